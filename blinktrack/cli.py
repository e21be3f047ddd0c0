"""Command-line entry point."""

from __future__ import annotations

import sys
import time
from typing import Optional, Sequence

from .camera import Camera
from .markers import MarkersManager
from .options import OptionsError, parse_args
from .runtime import RuntimeManager


def main(argv: Optional[Sequence[str]] = None) -> int:
    """Parse options, assemble the pipeline and run until interrupted."""
    try:
        setup = parse_args(argv)
    except OptionsError as exc:
        print(f"error: {exc}", file=sys.stderr)
        return 2

    cam_config = setup.cam_config
    if cam_config.is_recording:
        print(f"Using recording: {cam_config.file_path}")
    else:
        print(f"Using camera with biases from: {cam_config.biases_file}")
        print(f"Using camera config from: {cam_config.config_file_path}")

    camera = Camera(cam_config)
    markers = MarkersManager(setup.marker_config, camera)
    runtime = RuntimeManager(markers, camera, setup)
    runtime.buffers.input_buffer = camera.reader.buffers.output_buffer()

    camera.start()
    runtime.start()
    camera.reader.start()
    try:
        while True:
            time.sleep(1e-6)
    except KeyboardInterrupt:
        print("EXITING!")
        return 1
    finally:
        runtime.stop()