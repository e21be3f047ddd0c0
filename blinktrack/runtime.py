"""Wiring of the logger, the detector and the markers manager."""

from __future__ import annotations

import os
from typing import Union

from .buffers import Buffers
from .camera import Camera
from .detection import DetectionAlgorithm
from .logger import PoseLogger
from .markers import MarkersManager
from .options import Setup


class RuntimeManager:
    """Owns the pose logger and the detection stage fed from ``buffers``."""

    def __init__(
        self,
        markers: MarkersManager,
        camera: Camera,
        setup: Setup,
        csv_directory: Union[str, os.PathLike] = ".",
        visualizer=None,
    ) -> None:
        self.buffers = Buffers()
        self.logger = PoseLogger(setup.csv_logging_enabled, setup.parent_tf_name, csv_directory)
        self.markers = markers
        markers.logger = self.logger
        self.detector = DetectionAlgorithm(
            camera.width, camera.height, markers, self.logger, visualizer
        )

    def start(self) -> None:
        """Start the logger and the detector."""
        self.logger.start()
        self.detector.buffers.input_buffer = self.buffers.input_buffer
        self.detector.start()

    def stop(self) -> None:
        """Stop the detector and the logger."""
        self.detector.stop()
        self.logger.stop()