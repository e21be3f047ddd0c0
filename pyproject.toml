[build-system]
requires = ["hatchling"]
build-backend = "hatchling.build"

[project]
name = "blinktrack"
version = "0.1.0"
description = "Detection and pose tracking of blinking active markers from event-camera streams"
requires-python = ">=3.10"
keywords = [
    "event camera",
    "neuromorphic",
    "active markers",
    "pose estimation",
    "tracking",
    "pnp",
]
classifiers = [
    "Development Status :: 3 - Alpha",
    "Intended Audience :: Science/Research",
    "Operating System :: OS Independent",
    "Programming Language :: Python :: 3",
    "Programming Language :: Python :: 3 :: Only",
    "Programming Language :: Python :: 3.10",
    "Programming Language :: Python :: 3.11",
    "Programming Language :: Python :: 3.12",
    "Programming Language :: Python :: 3.13",
    "Topic :: Scientific/Engineering :: Image Recognition",
]
dependencies = [
    "numpy",
    "scipy",
    "pyyaml",
]

[project.optional-dependencies]
test = [
    "pytest",
]

[project.scripts]
blinktrack = "blinktrack.cli:main"

[tool.hatch.build.targets.wheel]
packages = ["blinktrack"]

[tool.pytest.ini_options]
testpaths = ["tests"]
addopts = "-ra"
