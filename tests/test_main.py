# pyright: reportUnknownMemberType=false, reportUnknownArgumentType=false, reportPrivateUsage=false

import io
from types import SimpleNamespace

import numpy as np
import pytest
from PIL import Image

import yuv_viewer.main as main
from yuv_viewer.errors import ConfigurationError, UnsupportedInputError


def gray_frame(width: int, height: int, luma: int = 128) -> bytes:
    return bytes([luma] * (width * height) + [128] * (width * height // 2))


def png_bytes(width: int, height: int) -> bytes:
    buf = io.BytesIO()
    Image.new("RGB", (width, height), color=(200, 100, 50)).save(buf, format="PNG")
    return buf.getvalue()


class Recorder:
    def __init__(self) -> None:
        self.calls: list[frozenset] = []

    def __call__(self, _config: main.ViewerConfig, changed: frozenset) -> None:
        self.calls.append(changed)


def test_parse_positive_int_follows_field_rules() -> None:
    assert main.parse_positive_int("640") == 640
    assert main.parse_positive_int("  640px") == 640
    assert main.parse_positive_int("-5") == 5
    assert main.parse_positive_int("0") == 1
    assert main.parse_positive_int("abc") == 1
    assert main.parse_positive_int("") == 1
    assert main.parse_positive_int(None, default=3) == 3


def test_config_notifies_only_changed_fields() -> None:
    config = main.ViewerConfig(width=4, height=4)
    recorder = Recorder()
    config.subscribe(recorder)

    config.set_dimensions(width=8)
    config.set_dimensions(width=8, height=4)
    config.set_dimensions(width=2, height=2)
    config.set_zoom(3)

    assert recorder.calls == [
        frozenset({"width"}),
        frozenset({"width", "height"}),
        frozenset({"zoom"}),
    ]
    assert (config.width, config.height, config.zoom) == (2, 2, 3)


def test_config_rejects_non_positive_values() -> None:
    with pytest.raises(ValueError):
        main.ViewerConfig(width=0)
    config = main.ViewerConfig()
    with pytest.raises(ValueError):
        config.set_dimensions(height=-1)
    with pytest.raises(ValueError):
        config.set_zoom(0)


def test_registry_load_decodes_raw_buffer() -> None:
    registry = main.SurfaceRegistry(main.ViewerConfig(width=4, height=2))

    entry = registry.load("frame.yuv", gray_frame(4, 2))

    assert "frame.yuv" in registry
    assert entry.error is None
    assert entry.pixels.shape == (2, 4, 4)
    assert (entry.pixels == [128, 128, 128, 255]).all()


def test_registry_load_replaces_existing_entry() -> None:
    registry = main.SurfaceRegistry(main.ViewerConfig(width=4, height=2))
    first = registry.load("frame.yuv", gray_frame(4, 2, luma=10))

    second = registry.load("frame.yuv", gray_frame(4, 2, luma=200))

    assert first is second
    assert len(registry) == 1
    assert tuple(second.pixels[0, 0]) == (200, 200, 200, 255)


def test_evicting_one_surface_leaves_others_alone() -> None:
    registry = main.SurfaceRegistry(main.ViewerConfig(width=4, height=2))
    registry.load("a.yuv", gray_frame(4, 2))
    kept = registry.load("b.yuv", gray_frame(4, 2, luma=60))
    kept_pixels = kept.pixels

    removed = registry.remove("a.yuv")

    assert removed is not None and removed.name == "a.yuv"
    assert "a.yuv" not in registry
    assert registry.names() == ["b.yuv"]
    assert registry.get("b.yuv").pixels is kept_pixels
    assert registry.remove("a.yuv") is None


def test_dimension_change_redecodes_every_surface() -> None:
    config = main.ViewerConfig(width=4, height=4)
    registry = main.SurfaceRegistry(config)
    for name in ("a.yuv", "b.yuv", "c.yuv"):
        registry.load(name, gray_frame(8, 8))

    config.set_dimensions(width=8, height=8)

    for entry in registry:
        assert entry.pixels.shape == (8, 8, 4)
        assert len(entry.pixels.tobytes()) == 8 * 8 * 4
        assert (entry.pixels[..., 3] == 255).all()


def test_failing_surface_does_not_block_others() -> None:
    config = main.ViewerConfig(width=4, height=4)
    registry = main.SurfaceRegistry(config)

    short = registry.load("short.yuv", bytes(10))
    good = registry.load("good.yuv", gray_frame(4, 4))

    assert short.pixels is None
    assert "10 bytes < 24 required" in short.error
    assert good.pixels.shape == (4, 4, 4)

    config.set_dimensions(width=2, height=2)

    assert short.error is None
    assert short.pixels.shape == (2, 2, 4)
    assert good.pixels.shape == (2, 2, 4)


def test_pad_short_buffers_visualises_partial_frames() -> None:
    registry = main.SurfaceRegistry(
        main.ViewerConfig(width=4, height=4), pad_short_buffers=True
    )

    entry = registry.load("short.yuv", bytes(10))

    assert entry.error is None
    assert entry.pixels.shape == (4, 4, 4)


def test_encoded_image_drives_dimensions() -> None:
    config = main.ViewerConfig(width=2, height=2)
    registry = main.SurfaceRegistry(config)
    raw = registry.load("raw.yuv", gray_frame(6, 4))

    image = registry.load("pic.png", png_bytes(6, 4), "image/png")

    assert (config.width, config.height) == (6, 4)
    assert image.pixels.shape == (4, 6, 4)
    assert tuple(image.pixels[0, 0]) == (200, 100, 50, 255)
    assert raw.pixels.shape == (4, 6, 4)

    config.set_dimensions(width=2, height=2)

    assert image.pixels.shape == (4, 6, 4)
    assert raw.pixels.shape == (2, 2, 4)


def test_undecodable_image_is_recorded_on_its_entry() -> None:
    registry = main.SurfaceRegistry(main.ViewerConfig())

    entry = registry.load("broken.png", b"not a png", "image/png")

    assert entry.pixels is None
    assert entry.error


def test_resolve_handle_checks_presence_and_type() -> None:
    handles = {"overlay": np.zeros((2, 2, 4), dtype=np.uint8), "label": "text"}

    assert main.resolve_handle(handles, "label", str) == "text"
    with pytest.raises(ConfigurationError, match="Could not find"):
        main.resolve_handle(handles, "zoom", str)
    with pytest.raises(ConfigurationError, match="expected str"):
        main.resolve_handle(handles, "overlay", str)


def test_pointer_from_mouse_event_maps_to_image_pixels() -> None:
    event = SimpleNamespace(x=100.0, y=300.0, xdata=9.5, ydata=4.0)

    pointer = main.pointer_from_mouse_event(event, figure_height=500.0)

    assert (pointer.client_x, pointer.client_y) == (100.0, 200.0)
    assert (pointer.screen_x, pointer.screen_y) == (100.0, 200.0)
    assert (pointer.offset_x, pointer.offset_y) == (10.0, 4.5)


def test_pointer_from_mouse_event_requires_data_coordinates() -> None:
    event = SimpleNamespace(x=1.0, y=1.0, xdata=None, ydata=None)

    with pytest.raises(UnsupportedInputError):
        main.pointer_from_mouse_event(event, figure_height=10.0)


def test_parse_args_reads_dimensions() -> None:
    args = main.parse_args(["a.yuv", "b.png", "--width", "640", "--height", "480", "--zoom", "4"])

    assert args.files == ["a.yuv", "b.png"]
    assert (args.width, args.height, args.zoom) == (640, 480, 4)
    assert args.magnifier_size == main.DEFAULT_MAGNIFIER_SIZE
    assert not args.pad_short


def test_parse_args_rejects_non_positive_sizes() -> None:
    with pytest.raises(SystemExit):
        main.parse_args(["a.yuv", "--width", "0"])
