# camstages

Post-processing stages for camera frames held in planar YUV420 buffers,
the base class and registry they are built on, a piecewise linear function
type, and a small preview layer.

## Modules

- `camstages.pwl`: `Pwl`, a piecewise linear function with evaluation
  (`eval`, `eval_span`), `compose`, `invert`, `map`, `map2`, `combine`,
  `match_domain` and `generate_lut`. `Point`, `Interval` and `PerpType`
  support it.
- `camstages.stage`: the `PostProcessingStage` base class, the data
  classes `StreamInfo`, `StreamConfiguration` and `CompletedRequest`, the
  stage registry (`register_stage`, `get_post_processing_stages`,
  `create_stage`), the `yuv420_to_rgb` converter (with centre cropping) and
  `execution_time`, which times a call in microseconds.
- `camstages.negate`: `NegateStage` (registered as `negate`), which inverts
  every byte of the main stream buffer.
- `camstages.motion_detect`: `MotionDetectStage` (registered as
  `motion_detect`). It compares a region of interest of the low resolution
  stream with the previous checked frame and sets
  `motion_detect.result` in the request's `post_process_metadata`.
- `camstages.tf_stage`: `TfStage`, the base class for stages that run a
  neural network asynchronously on every `refresh_rate`-th low resolution
  frame, together with `TfConfig` and `Tensor`.
- `camstages.object_detect`: `ObjectDetectTfStage` (`object_detect_tf`),
  producing `Detection` objects under `object_detect.results`.
- `camstages.detection`: `Detection` and `Rectangle`.
- `camstages.object_classify`: `ObjectClassifyTfStage`
  (`object_classify_tf`), producing `object_classify.results` and,
  optionally, an `annotate.text` line.
- `camstages.pose_estimation`: `PoseEstimationTfStage`
  (`pose_estimation_tf`), producing `pose_estimation.locations` and
  `pose_estimation.confidences` for 17 keypoints.
- `camstages.segmentation`: `SegmentationTfStage` (`segmentation_tf`),
  producing a `Segmentation` under `segmentation.result` and optionally
  drawing the map into the bottom right corner of the main image.
- `camstages.preview`: `Preview`, `NullPreview`, `ImagePreview`,
  `PreviewOptions`, `ColourSpace`, `colour_space_info`,
  `resample_yuv420_to_rgb` and `make_preview`.

## Installation

```
pip install .
```

To run the tests:

```
pip install .[test]
pytest
```

## Examples

```python
from camstages.pwl import Pwl

curve = Pwl.from_params([0, 0, 100, 50, 200, 200])
print(curve.eval(150))          # 125.0
lut = curve.generate_lut(int)   # 201 entries
```

Stages register themselves when their module is imported:

```python
import camstages.negate
from camstages.stage import create_stage, get_post_processing_stages

print(sorted(get_post_processing_stages()))   # ['negate']
stage = create_stage("negate", app)
```

## The application object

Every stage is given an `app` object and calls these methods on it:

- `get_main_stream()` and `lores_stream()`, each returning a stream or `None`;
- `get_stream_info(stream)`, returning a `StreamInfo`;
- `mmap(buffer)`, returning a list of writable buffers for a request's
  buffer, of which the first is used.

Network stages also need an interpreter. Pass `interpreter_factory` to the
stage, or give `app` a `make_interpreter(model_file)` method. The
interpreter must provide `inputs` and `outputs` (lists of `Tensor`),
`set_num_threads(n)` and `invoke()`.

## Previews

`make_preview(options)` returns a `NullPreview` when `options.nopreview`
is set, an `ImagePreview` when `options.qt_preview` is set, and a
`NullPreview` otherwise. `ImagePreview` renders each frame into an
in-memory RGB888 `image` (512x384 by default); `close()` makes `quit()`
return `True`. Both hand every buffer's fd back through the done callback.

## What the package does not do

- It does not talk to a camera; the application object supplies streams
  and buffers.
- It ships no neural-network runtime or models; the interpreter is yours.
- It opens no on-screen window; `ImagePreview` only keeps the image in
  memory.
- There is no HDR or dynamic range compression stage, and no histogram
  or quantile helper.
- It has no command-line program.