import pytest

from camstages.motion_detect import MotionDetectConfig, MotionDetectStage
from camstages.stage import CompletedRequest, StreamInfo, create_stage

WIDTH, HEIGHT = 8, 4


class FakeApp:
    def __init__(self, info=None):
        self.info = info

    def lores_stream(self):
        return "lores" if self.info is not None else None

    def get_stream_info(self, stream):
        return self.info

    def mmap(self, buffer):
        return [buffer]


def make_stage(**params):
    app = FakeApp(StreamInfo(width=WIDTH, height=HEIGHT, stride=WIDTH))
    stage = MotionDetectStage(app)
    stage.read({"frame_period": 0, "region_threshold": 0.5, **params})
    stage.configure()
    return stage


def frame(value=100):
    data = bytearray([value]) * (WIDTH * HEIGHT)
    return data + bytearray(WIDTH * HEIGHT // 2)


def run(stage, data, sequence=0):
    request = CompletedRequest(sequence=sequence, buffers={"lores": data})
    dropped = stage.process(request)
    return dropped, request.post_process_metadata


def test_read_defaults():
    stage = MotionDetectStage(FakeApp())
    stage.read({})
    assert stage.config == MotionDetectConfig()


def test_registered():
    stage = create_stage("motion_detect", FakeApp())
    assert stage.name() == "motion_detect"


def test_no_lores_stream_does_nothing():
    stage = MotionDetectStage(FakeApp())
    stage.read({})
    stage.configure()
    dropped, metadata = run(stage, frame())
    assert dropped is False
    assert metadata == {}


def test_first_frame_reports_no_motion():
    stage = make_stage()
    dropped, metadata = run(stage, frame())
    assert dropped is False
    assert metadata["motion_detect.result"] is False


def test_identical_frames_no_motion():
    stage = make_stage()
    run(stage, frame())
    _, metadata = run(stage, frame())
    assert metadata["motion_detect.result"] is False


def test_changed_frame_is_motion_and_then_stops():
    stage = make_stage()
    run(stage, frame(100))
    _, metadata = run(stage, frame(200))
    assert metadata["motion_detect.result"] is True
    assert stage.motion_detected is True
    _, metadata = run(stage, frame(200))
    assert metadata["motion_detect.result"] is False


def test_small_change_below_threshold_is_ignored():
    stage = make_stage()
    run(stage, frame(100))
    _, metadata = run(stage, frame(105))
    assert metadata["motion_detect.result"] is False


def test_frame_period_skips_frames():
    stage = make_stage(frame_period=5)
    dropped, metadata = run(stage, frame(), sequence=3)
    assert dropped is False
    assert "motion_detect.result" not in metadata
    _, metadata = run(stage, frame(), sequence=5)
    assert metadata["motion_detect.result"] is False


def test_roi_is_clamped_to_image():
    stage = make_stage(roi_x=0.5, roi_width=1.0)
    assert stage.roi_x == WIDTH // 2
    assert stage.roi_x + stage.roi_width == WIDTH
    assert stage.region_threshold <= stage.roi_width * stage.roi_height


def test_hskip_ignores_skipped_columns():
    stage = make_stage(hskip=2)
    assert stage.roi_width == WIDTH // 2
    run(stage, frame(100))
    changed = frame(100)
    for y in range(HEIGHT):
        for x in range(1, WIDTH, 2):
            changed[y * WIDTH + x] = 250
    _, metadata = run(stage, changed)
    assert metadata["motion_detect.result"] is False


def test_buffer_too_small_raises():
    stage = make_stage()
    with pytest.raises(ValueError):
        run(stage, bytearray(4))