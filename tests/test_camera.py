import numpy as np

from blinktrack.camera import Camera
from blinktrack.options import CameraSetup
from blinktrack.types import Event


def _setup():
    setup = CameraSetup(is_recording=True, file_path="rec.raw")
    setup.camera_matrix = np.eye(3) * 2
    return setup


def test_calibration_copied_from_setup():
    camera = Camera(_setup(), 64, 48)
    assert camera.width == 64 and camera.height == 48
    assert np.array_equal(camera.camera_matrix, np.eye(3) * 2)
    assert camera.source == "rec.raw"


def test_feed_requires_start_and_sync():
    camera = Camera(_setup(), 64, 48)
    out = camera.reader.buffers.output_buffer()
    assert camera.feed([Event(1, 1, 10)]) is False
    camera.start()
    camera.reader.start()
    assert camera.feed([Event(1, 1, 20)]) is False
    assert camera.reader.camera_first_timestamp == 20
    assert camera.feed([Event(2, 2, 30)]) is True
    assert out.get_nowait() == (Event(2, 2, 30),)