"""Command-line options and the YAML camera and marker descriptions."""

from __future__ import annotations

import argparse
import os
from dataclasses import dataclass, field
from typing import Any, Optional, Sequence, Union

import numpy as np
import yaml

DIST_COEFFS_COUNT = 5

PathLike = Union[str, os.PathLike]


class OptionsError(ValueError):
    """Raised for invalid command-line options or configuration files."""


@dataclass
class CameraSetup:
    """Where the events come from and how the camera is calibrated."""

    is_recording: bool = False
    file_path: str = ""
    config_file_path: str = ""
    biases_file: str = ""
    is_using_triggers: bool = False
    triggers_channel: Optional[int] = None
    camera_matrix: np.ndarray = field(default_factory=lambda: np.zeros((3, 3)))
    dist_coeffs: np.ndarray = field(default_factory=lambda: np.zeros((1, DIST_COEFFS_COUNT)))


@dataclass
class MarkersSetup:
    """Known markers: their ids, LED coordinates and LED blink frequencies."""

    ids: list[int] = field(default_factory=list)
    coordinates: list[list[tuple[float, float, float]]] = field(default_factory=list)
    frequencies: list[list[float]] = field(default_factory=list)


@dataclass
class Setup:
    """Everything the program was configured with."""

    synchro: bool = False
    recording_time: int = 0
    csv_logging_enabled: bool = False
    parent_tf_name: str = ""
    cam_config: CameraSetup = field(default_factory=CameraSetup)
    marker_config: MarkersSetup = field(default_factory=MarkersSetup)


class _Parser(argparse.ArgumentParser):
    def error(self, message: str) -> None:  # type: ignore[override]
        raise OptionsError(message)


def build_parser() -> argparse.ArgumentParser:
    """Build the command-line parser; errors raise OptionsError."""
    parser = _Parser(description="Track blinking active markers with an event camera.")
    parser.add_argument("-i", "--input_file", help="Recording file (raw)")
    parser.add_argument(
        "-c", "--camera_config_file", required=True, help="config file (yaml)"
    )
    parser.add_argument("-b", "--biases_file", help="Biases file (bias)")
    parser.add_argument(
        "-m",
        "--markers_config_filepath",
        required=True,
        help="Description file for markers",
    )
    parser.add_argument("-r", "--ros_parent", help="Name of the parent TF")
    parser.add_argument(
        "--csv_enable", "--csv", action="store_true", help="Enables csv logging"
    )
    parser.add_argument(
        "--synchro", "--sync", action="store_true", help="Enables synchronisation"
    )
    parser.add_argument(
        "-t", "--recording_time", type=int, help="Synchronisation time (ms)"
    )
    return parser


def _load_yaml(path: PathLike) -> Any:
    try:
        with open(path, encoding="utf-8") as handle:
            return yaml.safe_load(handle)
    except OSError as exc:
        raise OptionsError(f"cannot read configuration file {os.fspath(path)!r}: {exc}") from exc
    except yaml.YAMLError as exc:
        raise OptionsError(f"invalid YAML in {os.fspath(path)!r}: {exc}") from exc


def _lookup(node: Any, *keys: str) -> Any:
    for key in keys:
        if not isinstance(node, dict) or key not in node:
            raise OptionsError(f"missing configuration entry {'/'.join(keys)!r}")
        node = node[key]
    return node


def _as_int(value: Any, what: str) -> int:
    if isinstance(value, bool):
        raise OptionsError(f"{what} must be an integer, got {value!r}")
    if isinstance(value, int):
        return value
    if isinstance(value, str):
        try:
            return int(value)
        except ValueError:
            pass
    raise OptionsError(f"{what} must be an integer, got {value!r}")


def _as_float(value: Any, what: str) -> float:
    if isinstance(value, bool):
        raise OptionsError(f"{what} must be a number, got {value!r}")
    try:
        return float(value)
    except (TypeError, ValueError) as exc:
        raise OptionsError(f"{what} must be a number, got {value!r}") from exc


def _number_list(value: Any, what: str) -> list[float]:
    if not isinstance(value, list):
        raise OptionsError(f"{what} must be a list of numbers")
    return [_as_float(item, what) for item in value]


def load_camera_config(path: PathLike, setup: Optional[CameraSetup] = None) -> CameraSetup:
    """Read the calibration in ``path`` into ``setup`` (a new one if None) and return it."""
    if setup is None:
        setup = CameraSetup()
    config = _load_yaml(path) or {}

    matrix_values = _number_list(_lookup(config, "CameraMatrix", "data"), "CameraMatrix/data")
    dist_values = _number_list(_lookup(config, "DistCoeff", "data"), "DistCoeff/data")
    dist_len = _as_int(_lookup(config, "DistCoeff", "len"), "DistCoeff/len")

    if len(matrix_values) != 9:
        raise OptionsError(
            f"CameraMatrix/data must hold 9 values, got {len(matrix_values)}"
        )
    if len(dist_values) != dist_len:
        raise OptionsError(
            f"DistCoeff/data holds {len(dist_values)} values but len is {dist_len}"
        )
    if len(dist_values) > DIST_COEFFS_COUNT:
        raise OptionsError(
            f"at most {DIST_COEFFS_COUNT} distortion coefficients are supported"
        )

    setup.config_file_path = os.fspath(path)
    setup.camera_matrix = np.array(matrix_values, dtype=float).reshape(3, 3)
    dist_coeffs = np.zeros((1, DIST_COEFFS_COUNT))
    dist_coeffs[0, : len(dist_values)] = dist_values
    setup.dist_coeffs = dist_coeffs

    triggers = config.get("ExternalTriggers") if isinstance(config, dict) else None
    if triggers:
        setup.is_using_triggers = True
        setup.triggers_channel = _as_int(
            _lookup(triggers, "channel_id"), "ExternalTriggers/channel_id"
        )
    return setup


def load_markers_config(path: PathLike) -> MarkersSetup:
    """Read the marker descriptions in ``path``."""
    config = _load_yaml(path) or {}
    if not isinstance(config, dict):
        raise OptionsError("markers configuration must be a mapping")
    markers = config.get("Markers") or []
    if not isinstance(markers, list):
        raise OptionsError("Markers must be a list")

    result = MarkersSetup()
    for marker in markers:
        marker_id = _as_int(_lookup(marker, "ID"), "Markers/ID")
        points = marker.get("Points") or []
        if not isinstance(points, list):
            raise OptionsError("Markers/Points must be a list")
        coordinates = [
            (
                _as_float(_lookup(point, "x"), "Points/x"),
                _as_float(_lookup(point, "y"), "Points/y"),
                _as_float(_lookup(point, "z"), "Points/z"),
            )
            for point in points
        ]
        frequencies = [
            float(_as_int(_lookup(point, "freq"), "Points/freq")) for point in points
        ]
        result.coordinates.append(coordinates)
        result.frequencies.append(frequencies)
        result.ids.append(marker_id)
    return result


def parse_args(argv: Optional[Sequence[str]] = None) -> Setup:
    """Parse the command line and load the configuration files it names."""
    args = build_parser().parse_args(argv)
    setup = Setup()

    if args.ros_parent is not None:
        setup.parent_tf_name = args.ros_parent
        print(f"ROS TF enabled - parent TF name: {setup.parent_tf_name}")

    if args.recording_time is not None:
        setup.recording_time = args.recording_time

    setup.synchro = args.synchro
    if setup.synchro:
        print("Synchronization enabled")

    setup.csv_logging_enabled = args.csv_enable
    if setup.csv_logging_enabled:
        print("CSV logging enabled!")

    cam_config = CameraSetup()
    if args.input_file is not None:
        cam_config.is_recording = True
        cam_config.file_path = args.input_file
    elif args.biases_file is None:
        raise OptionsError("No biases file included")
    else:
        cam_config.biases_file = args.biases_file

    setup.cam_config = load_camera_config(args.camera_config_file, cam_config)
    setup.marker_config = load_markers_config(args.markers_config_filepath)
    return setup