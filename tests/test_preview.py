from types import SimpleNamespace

import pytest

from camstages.preview import (
    ColourSpace,
    ImagePreview,
    NullPreview,
    Preview,
    PreviewOptions,
    colour_space_info,
    make_preview,
    resample_yuv420_to_rgb,
)


def make_frame(width, height, y_value=100, u_value=128, v_value=128):
    y_plane = bytes([y_value]) * (width * height)
    uv = (width // 2) * (height // 2)
    return bytearray(y_plane + bytes([u_value]) * uv + bytes([v_value]) * uv)


def info(width, height, colour_space=ColourSpace.SYCC):
    return SimpleNamespace(width=width, height=height, stride=width, colour_space=colour_space)


def test_colour_space_info_sycc_is_full_range():
    assert colour_space_info(ColourSpace.SYCC) == ("601", "full")


def test_colour_space_info_rec709():
    assert colour_space_info(ColourSpace.REC709) == ("709", "limited")


@pytest.mark.parametrize("cs", [ColourSpace.SMPTE170M, None, ColourSpace.RAW])
def test_colour_space_info_defaults(cs):
    assert colour_space_info(cs) == ("601", "limited")


def test_resample_grey_is_identity_for_jpeg():
    out = resample_yuv420_to_rgb(make_frame(8, 8, 100), info(8, 8), 4, 4)
    assert len(out) == 4 * 4 * 3
    assert set(out) == {100}


def test_resample_limited_range_black():
    out = resample_yuv420_to_rgb(make_frame(8, 8, 16), info(8, 8, ColourSpace.SMPTE170M), 4, 4)
    assert set(out) == {0}


def test_resample_clamps():
    out = resample_yuv420_to_rgb(make_frame(4, 4, 255, 255, 255), info(4, 4), 2, 2)
    assert out[0] == 255
    assert out[2] == 255
    assert out[1] < 255


def test_resample_nearest_sampling():
    width = height = 4
    y_plane = bytes((r * 4 + c) * 10 for r in range(height) for c in range(width))
    data = y_plane + bytes([128]) * 8
    out = resample_yuv420_to_rgb(data, info(width, height), 2, 2)
    reds = list(out[0::3])
    assert reds == [10, 30, 90, 110]
    assert list(out[1::3]) == reds
    assert list(out[2::3]) == reds


def test_resample_rejects_odd_size():
    with pytest.raises(ValueError):
        resample_yuv420_to_rgb(make_frame(4, 4), info(4, 4), 3, 2)


def test_resample_rejects_short_buffer():
    with pytest.raises(ValueError):
        resample_yuv420_to_rgb(bytes(10), info(8, 8), 2, 2)


def test_preview_is_abstract():
    with pytest.raises(TypeError):
        Preview(PreviewOptions())


def test_null_preview_returns_buffer():
    returned = []
    preview = NullPreview(PreviewOptions(nopreview=True))
    preview.set_done_callback(returned.append)
    preview.show(7, b"", info(2, 2))
    assert returned == [7]
    assert preview.max_image_size() == (0, 0)
    assert preview.quit() is False


def test_image_preview_default_size():
    preview = ImagePreview(PreviewOptions(qt_preview=True))
    assert (preview.width, preview.height) == (512, 384)
    assert len(preview.image) == 512 * 384 * 3
    assert preview.max_image_size() == (0, 0)


def test_image_preview_rejects_odd_dimensions():
    with pytest.raises(ValueError):
        ImagePreview(PreviewOptions(preview_width=5, preview_height=4))


def test_image_preview_show_renders_and_returns():
    returned = []
    preview = ImagePreview(PreviewOptions(preview_width=4, preview_height=2))
    preview.set_done_callback(returned.append)
    preview.show(3, make_frame(8, 4, 60), info(8, 4))
    assert returned == [3]
    assert bytes(preview.image) == bytes([60]) * (4 * 2 * 3)


def test_image_preview_title_and_close():
    preview = ImagePreview(PreviewOptions(preview_width=2, preview_height=2))
    preview.set_info_text("frame 1")
    assert preview.title == "frame 1"
    assert preview.quit() is False
    preview.close()
    assert preview.quit() is True


def test_make_preview_choices():
    null_preview = make_preview(PreviewOptions(nopreview=True))
    assert type(null_preview) is NullPreview
    assert null_preview.max_image_size() == (0, 0)

    image_preview = make_preview(PreviewOptions(qt_preview=True))
    assert type(image_preview) is ImagePreview
    assert (image_preview.width, image_preview.height) == (512, 384)

    fallback = make_preview(PreviewOptions())
    assert type(fallback) is NullPreview
    returned = []
    fallback.set_done_callback(returned.append)
    fallback.show(5, b"", info(2, 2))
    assert returned == [5]


def test_make_preview_nopreview_wins():
    preview = make_preview(PreviewOptions(nopreview=True, qt_preview=True))
    assert type(preview) is NullPreview
    returned = []
    preview.set_done_callback(returned.append)
    preview.show(9, b"", info(2, 2))
    assert returned == [9]