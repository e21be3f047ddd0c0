# blinktrack

Detect and track blinking active markers in an event stream and estimate
their 6-DoF pose.

Each marker carries several LEDs, each blinking at its own frequency.
blinktrack builds a per-pixel histogram of events over a 1 ms window. It finds
blobs of pixels that fired often enough and estimates each blob's blink
frequency from the intervals between its events. It then matches the set of
frequencies against the configured markers. Once a marker is recognised, every
LED is followed by a small event-driven tracker, and the marker pose is refined
continuously with a perspective-n-point solve. Tracking is dropped when a blob
stays silent for more than eight blink periods, or when the summed reprojection
error exceeds twice the summed tracker radii.

## Installation

```
pip install .
```

To run the test suite:

```
pip install ".[test]"
pytest
```

## Command line

```
blinktrack --help
```

The command parses its options, loads both configuration files, assembles the
pipeline (camera, detector, markers manager, pose logger) and runs until it is
interrupted with Ctrl-C. Invalid options or configuration files print an error
and exit with status 2.

Options:

- `-c`, `--camera_config_file`: camera calibration (YAML). Required.
- `-m`, `--markers_config_filepath`: marker description (YAML). Required.
- `-i`, `--input_file`: path of a recording; marks the setup as a recording.
- `-b`, `--biases_file`: path of a biases file. Required when no input file is
  given.
- `-r`, `--ros_parent`: a parent frame name; it is stored in the setup and the
  logger but not used further.
- `--csv_enable` (`--csv`): write every pose to a timestamped CSV file in the
  current directory.
- `--synchro` (`--sync`): sets the synchronisation flag in the setup.
- `-t`, `--recording_time`: an integer stored in the setup.

### Camera configuration

```yaml
CameraMatrix:
  data: [fx, 0, cx, 0, fy, cy, 0, 0, 1]   # exactly 9 values, row major
DistCoeff:
  len: 5
  data: [k1, k2, p1, p2, k3]              # len values, at most 5
ExternalTriggers:        # optional
  channel_id: 0
```

### Marker configuration

```yaml
Markers:
  - ID: 1
    Points:
      - {x: 0.0,  y: 0.0,  z: 0.0, freq: 2000}
      - {x: 0.05, y: 0.0,  z: 0.0, freq: 3000}
      - {x: 0.0,  y: 0.05, z: 0.0, freq: 4000}
      - {x: 0.05, y: 0.05, z: 0.0, freq: 5000}
```

Coordinates are in the marker frame; each `freq` is an integer blink frequency
in Hz. A detected blob matches an LED when the integer part of its frequency
differs from the configured one by less than 25 Hz. A pose needs at least four
points.

## What the package does not do

blinktrack does not talk to camera hardware and does not read recording or
biases files: it only records their paths. Events reach the pipeline solely
through `Camera.feed()` (or `EventBufferReader.read_events()`), so the
`blinktrack` command on its own starts an idle pipeline that waits for events
that never arrive. There is no display window and poses are not published
anywhere; they go to the pose logger, which writes them to CSV when enabled and
answers `PoseLogger.current_status()` queries.

## CSV output

With CSV logging enabled, the file is named after the local start time
(`%Y-%m-%d-%H-%M-%S.csv`). Each pose becomes one row separated by `;`.
Strings are quoted, with inner quotes doubled; floats use the `g` format and
booleans are written as `1` or `0`. The header is:

```
"PC_TS";"C_TS";"ID";"X";"Y";"Z";"R1";"R2";"R3";"w";"DET"
```

`PC_TS` and `C_TS` are the host and camera timestamps in microseconds. `X`,
`Y` and `Z` are the translation. `R1`, `R2`, `R3` and `w` are the rotation as
an (x, y, z, w) quaternion. `DET` is `1` for the pose computed right after a
detection and `0` for poses from tracking.

## Library

- `blinktrack.types`: `Event`, `TrackerOut`, `Translation`, `Rotation` and
  `OutputEntry`.
- `blinktrack.buffers`: `Buffers`, which fans event batches out to registered
  queues, and `BufferNotConnectedError`.
- `blinktrack.csvfile`: `CsvFile` and `escape`.
- `blinktrack.tracker`: `TrackedBlob`, the per-LED event tracker.
- `blinktrack.options`: `build_parser`, `parse_args`, `load_camera_config`,
  `load_markers_config`, the `Setup`, `CameraSetup` and `MarkersSetup`
  dataclasses, and `OptionsError`.
- `blinktrack.logger`: `PoseLogger` and `rotation_to_quaternion`.
- `blinktrack.event_reader`: `EventBufferReader`; the first non-empty batch
  only synchronises clocks, later batches are forwarded once `start()` was
  called.
- `blinktrack.pose`: `solve_pnp`, `project_points`, `contour_centroid` and
  `PoseError`.
- `blinktrack.markers`: `Marker` and `MarkersManager`.
- `blinktrack.detection`: `DetectionAlgorithm`, `find_contours`,
  `contour_area` and `estimate_frequency`.
- `blinktrack.camera`: `Camera` (default geometry 1280 × 720).
- `blinktrack.runtime`: `RuntimeManager`.
- `blinktrack.cli`: `main`, the command-line entry point.

Example:

```python
from blinktrack.csvfile import escape
from blinktrack.logger import rotation_to_quaternion

escape('say "hi"')                  # '"say ""hi"""'
rotation_to_quaternion((0, 0, 0))   # (0.0, 0.0, 0.0, 1.0)
```