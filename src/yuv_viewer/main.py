#!/usr/bin/env -S uv run --script
# /// script
# requires-python = ">=3.10"
# dependencies = ["numpy", "matplotlib", "Pillow"]
# ///

"""Interactive viewer for raw YUV420p frame dumps with a cursor magnifier."""

# mypy: ignore-errors

from __future__ import annotations

import argparse
import collections.abc as cabc
import logging
import math
import mimetypes
import os
import re
import sys
from dataclasses import dataclass, field
from pathlib import Path
from typing import TYPE_CHECKING, Any, Callable, TypeAlias, TypeVar

import numpy as np

if __package__ in (None, ""):
    import importlib

    PACKAGE_ROOT = os.path.dirname(os.path.dirname(__file__))
    if PACKAGE_ROOT not in sys.path:
        sys.path.insert(0, PACKAGE_ROOT)
    _decoder = importlib.import_module("yuv_viewer.decoder")
    _errors = importlib.import_module("yuv_viewer.errors")
    _magnifier = importlib.import_module("yuv_viewer.magnifier")
else:  # pragma: no cover - exercised via unit tests
    from . import decoder as _decoder
    from . import errors as _errors
    from . import magnifier as _magnifier

logger = logging.getLogger(__name__)

if TYPE_CHECKING:  # pragma: no cover - typing helpers only
    from numpy import ndarray as NDArray
    from matplotlib.backend_bases import KeyEvent, LocationEvent, MouseEvent
else:
    NDArray: TypeAlias = Any

ConfigurationError = _errors.ConfigurationError
DecodeError = _errors.DecodeError
UnsupportedInputError = _errors.UnsupportedInputError
decode_yuv420p = _decoder.decode_yuv420p
decode_encoded_image = _decoder.decode_encoded_image
is_encoded_image = _decoder.is_encoded_image

T = TypeVar("T")

DIMENSION_FIELDS = frozenset({"width", "height"})
DEFAULT_MAGNIFIER_SIZE = 200
EVICT_KEYS = ("x", "delete")

LEADING_INT = re.compile(r"^\s*([+-]?\d+)")


def parse_positive_int(text: str | None, default: int = 1) -> int:
    """Parse user input the way the size and zoom fields expect.

    Only a leading integer counts (``"640px"`` is 640), its sign is dropped,
    and anything unparsable or zero falls back to ``default``.
    """
    match = LEADING_INT.match(text or "")
    if not match:
        return default
    value = abs(int(match.group(1)))
    return value or default


def _require_positive(name: str, value: float) -> None:
    if not value > 0:
        msg = f"The {name} must be positive, got {value!r}"
        raise ValueError(msg)


ConfigObserver = Callable[["ViewerConfig", frozenset], object]


@dataclass
class ViewerConfig:
    """Frame dimensions and zoom level shared by every surface.

    Observers registered with :meth:`subscribe` are called with the config and
    the set of changed field names, in the order they subscribed.
    """

    width: int = 1
    height: int = 1
    zoom: float = 1
    _observers: list[ConfigObserver] = field(
        default_factory=list, init=False, repr=False, compare=False
    )

    def __post_init__(self) -> None:
        _require_positive("width", self.width)
        _require_positive("height", self.height)
        _require_positive("zoom level", self.zoom)

    def subscribe(self, callback: ConfigObserver) -> None:
        self._observers.append(callback)

    def _notify(self, changed: frozenset) -> None:
        if not changed:
            return
        for callback in list(self._observers):
            callback(self, changed)

    def set_dimensions(self, width: int | None = None, height: int | None = None) -> None:
        """Update the frame size; observers run only if something changed."""
        changed: set[str] = set()
        if width is not None:
            _require_positive("width", width)
            if int(width) != self.width:
                self.width = int(width)
                changed.add("width")
        if height is not None:
            _require_positive("height", height)
            if int(height) != self.height:
                self.height = int(height)
                changed.add("height")
        self._notify(frozenset(changed))

    def set_zoom(self, zoom: float) -> None:
        _require_positive("zoom level", zoom)
        if zoom != self.zoom:
            self.zoom = zoom
            self._notify(frozenset({"zoom"}))


# -------- Surface registry --------


@dataclass
class SurfaceEntry:
    """A loaded file, its decoded pixels and the caller's drawable for it."""

    name: str
    data: bytes
    mime_type: str | None = None
    pixels: NDArray | None = None
    error: str | None = None
    artist: Any = None

    @property
    def is_encoded(self) -> bool:
        return is_encoded_image(self.mime_type)


class SurfaceRegistry:
    """Named surfaces kept in sync with a :class:`ViewerConfig`.

    Raw YUV surfaces re-decode whenever the width or height changes. A decode
    failure is recorded on its own entry and never stops the others.
    """

    def __init__(self, config: ViewerConfig, *, pad_short_buffers: bool = False) -> None:
        self.config = config
        self.pad_short_buffers = pad_short_buffers
        self._entries: dict[str, SurfaceEntry] = {}
        config.subscribe(self._on_config_change)

    def __contains__(self, name: object) -> bool:
        return name in self._entries

    def __len__(self) -> int:
        return len(self._entries)

    def __iter__(self) -> cabc.Iterator[SurfaceEntry]:
        return iter(list(self._entries.values()))

    def get(self, name: str) -> SurfaceEntry | None:
        return self._entries.get(name)

    def names(self) -> list[str]:
        return list(self._entries)

    def load(self, name: str, data: bytes, mime_type: str | None = None) -> SurfaceEntry:
        """Insert ``name`` (or replace its bytes) and render it."""
        entry = self._entries.get(name)
        if entry is None:
            entry = SurfaceEntry(name=name, data=bytes(data), mime_type=mime_type)
            self._entries[name] = entry
        else:
            entry.data = bytes(data)
            entry.mime_type = mime_type
        self._render(entry)
        return entry

    def remove(self, name: str) -> SurfaceEntry | None:
        return self._entries.pop(name, None)

    def redecode_all(self) -> list[str]:
        """Re-decode every raw surface at the current dimensions."""
        decoded: list[str] = []
        for entry in list(self._entries.values()):
            if entry.is_encoded:
                continue
            self._render(entry)
            decoded.append(entry.name)
        return decoded

    def _on_config_change(self, _config: ViewerConfig, changed: frozenset) -> None:
        if changed & DIMENSION_FIELDS:
            logger.debug(
                "Dimensions now %dx%d, re-decoding raw surfaces",
                self.config.width,
                self.config.height,
            )
            self.redecode_all()

    def _render(self, entry: SurfaceEntry) -> None:
        try:
            if entry.is_encoded:
                image = decode_encoded_image(entry.data)
                entry.pixels = image.pixels
                entry.error = None
                self.config.set_dimensions(image.width, image.height)
                return
            entry.pixels = decode_yuv420p(
                entry.data,
                self.config.width,
                self.config.height,
                pad=self.pad_short_buffers,
            )
        except DecodeError as exc:
            logger.warning("Failed to decode %s: %s", entry.name, exc)
            entry.pixels = None
            entry.error = str(exc)
        else:
            entry.error = None


# -------- Handle lookup --------


def resolve_handle(handles: cabc.Mapping[str, object], name: str, kind: type[T]) -> T:
    """Return ``handles[name]`` if it exists and is a ``kind`` instance."""
    if name not in handles:
        raise ConfigurationError(f"Could not find handle {name!r}")
    handle = handles[name]
    if not isinstance(handle, kind):
        raise ConfigurationError(
            f"Handle {name!r} is a {type(handle).__name__}, expected {kind.__name__}"
        )
    return handle


def pointer_from_mouse_event(event: MouseEvent, figure_height: float) -> Any:
    """Translate a Matplotlib mouse event into a magnifier ``PointerInput``.

    Viewport coordinates use a top-left origin; the element offset is the
    image pixel position derived from the event's data coordinates.
    Matplotlib exposes no screen-global position, so the screen fields
    repeat the viewport (figure canvas) coordinates.
    """
    if event.xdata is None or event.ydata is None:
        raise UnsupportedInputError("Mouse event carries no data coordinates")
    client_x = float(event.x)
    client_y = float(figure_height - event.y)
    return _magnifier.PointerInput(
        screen_x=client_x,
        screen_y=client_y,
        client_x=client_x,
        client_y=client_y,
        offset_x=float(event.xdata) + 0.5,
        offset_y=float(event.ydata) + 0.5,
    )


def build_parser() -> argparse.ArgumentParser:
    p = argparse.ArgumentParser(
        description="Raw YUV420p frame viewer with a cursor magnifier",
    )
    p.add_argument("files", nargs="+", help="raw .yuv dumps or PNG/JPEG images")
    p.add_argument("--width", type=int, default=1, help="frame width in pixels")
    p.add_argument("--height", type=int, default=1, help="frame height in pixels")
    p.add_argument("--zoom", type=int, default=1, help="magnifier zoom level")
    p.add_argument(
        "--magnifier-size",
        type=int,
        default=DEFAULT_MAGNIFIER_SIZE,
        help="magnifier overlay size in screen pixels",
    )
    p.add_argument(
        "--pad-short",
        action="store_true",
        help="zero-pad raw files shorter than width*height*3/2",
    )
    p.add_argument("-v", "--verbose", action="count", default=0)
    return p


def parse_args(argv: list[str] | None = None) -> argparse.Namespace:
    p = build_parser()
    args = p.parse_args(argv)
    for name in ("width", "height", "zoom", "magnifier_size"):
        if getattr(args, name) <= 0:
            p.error(f"--{name.replace('_', '-')} must be a positive integer")
    return args


# -------- Main viewer --------


class FrameViewer:
    """Matplotlib window showing every registry surface plus the magnifier.

    One ``imshow`` axes per surface, text boxes for width/height/zoom and a
    ``figimage`` overlay whose top-left corner follows the cursor. Event
    handlers are plain methods; :meth:`connect` wires them to the canvas.
    """

    def __init__(
        self,
        config: ViewerConfig,
        registry: SurfaceRegistry,
        *,
        magnifier_size: int = DEFAULT_MAGNIFIER_SIZE,
    ) -> None:
        try:
            import matplotlib.pyplot as plt
            from matplotlib.image import FigureImage
            from matplotlib.widgets import TextBox
        except ModuleNotFoundError as exc:  # pragma: no cover - viewer path only
            raise RuntimeError("Matplotlib is required to run the viewer") from exc

        self.config = config
        self.registry = registry
        self.size = magnifier_size
        self.active_name: str | None = None
        self.cids: tuple[int, ...] = ()

        self.fig = fig = plt.figure(figsize=(12, 7))
        entries = list(registry)
        ncols = max(1, min(len(entries), 3))
        nrows = max(1, math.ceil(len(entries) / ncols))
        gs = fig.add_gridspec(nrows=nrows, ncols=ncols, bottom=0.14, top=0.94)

        self.axes_names: dict[Any, str] = {}
        for idx, entry in enumerate(entries):
            ax = fig.add_subplot(gs[idx // ncols, idx % ncols])
            ax.set_xticks([])
            ax.set_yticks([])
            entry.artist = ax.imshow(
                np.zeros((1, 1, 4), dtype=np.uint8),
                interpolation="nearest",
                origin="upper",
            )
            self.axes_names[ax] = entry.name

        self.overlay = np.zeros((self.size, self.size, 4), dtype=np.uint8)
        handles: dict[str, object] = {
            "width": TextBox(fig.add_axes([0.10, 0.03, 0.12, 0.05]), "Width ", initial=str(config.width)),
            "height": TextBox(fig.add_axes([0.34, 0.03, 0.12, 0.05]), "Height ", initial=str(config.height)),
            "zoom": TextBox(fig.add_axes([0.58, 0.03, 0.12, 0.05]), "Zoom ", initial=str(config.zoom)),
            "zoom_overlay": fig.figimage(self.overlay, xo=0, yo=0, origin="upper", zorder=10),
        }
        self.width_box = resolve_handle(handles, "width", TextBox)
        self.height_box = resolve_handle(handles, "height", TextBox)
        self.zoom_box = resolve_handle(handles, "zoom", TextBox)
        self.zoom_image = resolve_handle(handles, "zoom_overlay", FigureImage)
        self.zoom_image.set_visible(False)

        self.controller = _magnifier.MagnifierController(self.render_zoom, self.on_visibility)

        config.subscribe(self.on_config_change)
        for entry in entries:
            self.refresh_surface(entry)

        self.width_box.on_submit(lambda text: config.set_dimensions(width=parse_positive_int(text)))
        self.height_box.on_submit(lambda text: config.set_dimensions(height=parse_positive_int(text)))
        self.zoom_box.on_submit(lambda text: config.set_zoom(parse_positive_int(text)))

    def connect(self) -> None:
        canvas = self.fig.canvas
        self.cids = (
            canvas.mpl_connect("axes_enter_event", self.on_enter),
            canvas.mpl_connect("axes_leave_event", self.on_leave),
            canvas.mpl_connect("motion_notify_event", self.on_move),
            canvas.mpl_connect("key_press_event", self.on_key),
        )

    def refresh_surface(self, entry: SurfaceEntry) -> None:
        image = entry.artist
        if image is None:
            return
        ax = image.axes
        if entry.pixels is None:
            image.set_data(np.zeros((1, 1, 4), dtype=np.uint8))
            h, w = 1, 1
            ax.set_title(f"{entry.name}\n{entry.error}", fontsize=8, color="red")
        else:
            h, w = entry.pixels.shape[:2]
            image.set_data(entry.pixels)
            ax.set_title(f"{entry.name} ({w}x{h})", fontsize=9, color="black")
        image.set_extent((-0.5, w - 0.5, h - 0.5, -0.5))
        ax.set_xlim(-0.5, w - 0.5)
        ax.set_ylim(h - 0.5, -0.5)

    @staticmethod
    def _sync_box(box: Any, value: object) -> None:
        if box.text != str(value):
            box.set_val(str(value))

    def on_config_change(self, cfg: ViewerConfig, changed: frozenset) -> None:
        if changed & DIMENSION_FIELDS:
            for entry in self.registry:
                self.refresh_surface(entry)
            self._sync_box(self.width_box, cfg.width)
            self._sync_box(self.height_box, cfg.height)
        if "zoom" in changed:
            self._sync_box(self.zoom_box, cfg.zoom)
        self.fig.canvas.draw_idle()

    def render_zoom(self, sample: Any) -> None:
        entry = self.registry.get(self.active_name) if self.active_name else None
        if entry is None or entry.pixels is None:
            return
        frame = _magnifier.render_magnifier(entry.pixels, sample, self.config.zoom, self.overlay)
        # figimage offsets are the bottom-left corner in display pixels.
        self.zoom_image.ox = frame.anchor.x
        self.zoom_image.oy = self.fig.bbox.height - frame.anchor.y - self.size
        self.zoom_image.set_data(self.overlay)
        self.fig.canvas.draw_idle()

    def on_visibility(self, state: Any) -> None:
        self.zoom_image.set_visible(state is _magnifier.Visibility.VISIBLE)
        self.fig.canvas.draw_idle()

    def on_enter(self, event: LocationEvent) -> None:
        if event.inaxes in self.axes_names:
            self.active_name = self.axes_names[event.inaxes]
            self.controller.handle("mouseenter")

    def on_leave(self, event: LocationEvent) -> None:
        if event.inaxes in self.axes_names and self.axes_names[event.inaxes] == self.active_name:
            self.controller.handle("mouseleave")
            self.active_name = None

    def on_move(self, event: MouseEvent) -> None:
        if event.inaxes not in self.axes_names or event.xdata is None or event.ydata is None:
            return
        if self.axes_names[event.inaxes] != self.active_name:
            return
        self.controller.handle("mousemove", pointer_from_mouse_event(event, self.fig.bbox.height))

    def on_key(self, event: KeyEvent) -> None:
        if event.key not in EVICT_KEYS or event.inaxes not in self.axes_names:
            return
        if any(box.capturekeystrokes for box in (self.width_box, self.height_box, self.zoom_box)):
            return
        ax = event.inaxes
        name = self.axes_names.pop(ax)
        self.registry.remove(name)
        if name == self.active_name:
            self.controller.handle("mouseleave")
            self.active_name = None
        ax.remove()
        logger.info("Evicted %s", name)
        self.fig.canvas.draw_idle()


def main(argv: list[str] | None = None) -> None:
    """Launch the interactive matplotlib frame viewer."""
    try:
        import matplotlib.pyplot as plt
    except ModuleNotFoundError as exc:  # pragma: no cover - viewer path only
        raise RuntimeError("Matplotlib is required to run the viewer") from exc

    args = parse_args(argv)
    logging.basicConfig(
        level=max(logging.DEBUG, logging.WARNING - 10 * args.verbose),
        format="%(levelname)s %(name)s: %(message)s",
    )

    config = ViewerConfig(width=args.width, height=args.height, zoom=args.zoom)
    registry = SurfaceRegistry(config, pad_short_buffers=args.pad_short)

    for path in args.files:
        try:
            data = Path(path).read_bytes()
        except OSError as exc:
            raise SystemExit(f"cannot read {path}: {exc}") from exc
        mime_type, _ = mimetypes.guess_type(path)
        registry.load(os.path.basename(path), data, mime_type)

    viewer = FrameViewer(config, registry, magnifier_size=args.magnifier_size)
    viewer.connect()
    plt.show()


if __name__ == "__main__":
    main()
