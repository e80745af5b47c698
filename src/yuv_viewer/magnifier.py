"""Cursor-following magnifier that zooms into an RGBA surface."""

from __future__ import annotations

import enum
from dataclasses import dataclass
from typing import TYPE_CHECKING, Any, Callable, TypeAlias

import numpy as np

from .errors import ConfigurationError, UnsupportedInputError

if TYPE_CHECKING:  # pragma: no cover - typing helpers only
    from numpy import ndarray as NDArray
else:
    NDArray: TypeAlias = Any

# Vignette stops: transparent up to 80% of the radius, then a ramp to 30% black.
VIGNETTE_START = 0.8
VIGNETTE_ALPHA = 0.3


@dataclass(frozen=True)
class Point:
    x: float
    y: float


@dataclass(frozen=True)
class CursorSample:
    """A cursor position projected into screen, viewport and surface space."""

    screen: Point
    browser: Point
    element: Point


@dataclass(frozen=True)
class PointerInput:
    """Mouse-style input; the element position is the offset into the target."""

    screen_x: float
    screen_y: float
    client_x: float
    client_y: float
    offset_x: float
    offset_y: float


@dataclass(frozen=True)
class TouchInput:
    """First touch point of a touch event plus the target's page offset."""

    screen_x: float
    screen_y: float
    client_x: float
    client_y: float
    page_x: float
    page_y: float
    target_left: float
    target_top: float


@dataclass(frozen=True)
class CropRect:
    x: float
    y: float
    width: float
    height: float


@dataclass(frozen=True)
class MagnifierFrame:
    """Where the overlay goes and which part of the source it shows."""

    anchor: Point
    crop: CropRect


class Visibility(enum.Enum):
    HIDDEN = "hidden"
    VISIBLE = "visible"


def cursor_sample(event: object) -> CursorSample:
    """Normalise a pointer or touch input into a :class:`CursorSample`."""
    if isinstance(event, TouchInput):
        element = Point(event.page_x - event.target_left, event.page_y - event.target_top)
    elif isinstance(event, PointerInput):
        element = Point(event.offset_x, event.offset_y)
    else:
        raise UnsupportedInputError(
            f"Cursor position requested for unsupported input {type(event).__name__}"
        )
    return CursorSample(
        screen=Point(event.screen_x, event.screen_y),
        browser=Point(event.client_x, event.client_y),
        element=element,
    )


def _require_surface(surface: object, label: str) -> NDArray:
    if (
        not isinstance(surface, np.ndarray)
        or surface.ndim != 3
        or surface.shape[2] != 4
        or surface.dtype != np.uint8
    ):
        msg = f"The {label} surface must be a (height, width, 4) uint8 array"
        raise ConfigurationError(msg)
    return surface


def _check_zoom(zoom: float) -> None:
    if not zoom > 0:
        msg = "The zoom level must be a positive number"
        raise ValueError(msg)


def crop_rect(
    element: Point, overlay_width: int, overlay_height: int, zoom: float,
) -> CropRect:
    """Return the source region that fills the overlay at ``zoom``."""
    _check_zoom(zoom)
    return CropRect(
        x=element.x - overlay_width / (2 * zoom),
        y=element.y - overlay_height / (2 * zoom),
        width=overlay_width / zoom,
        height=overlay_height / zoom,
    )


def _radial_distance(overlay_width: int, overlay_height: int) -> NDArray:
    # Distances are measured from pixel centres to the overlay centre.
    ys = np.arange(overlay_height) + 0.5 - overlay_height / 2
    xs = np.arange(overlay_width) + 0.5 - overlay_width / 2
    return np.hypot(ys[:, None], xs[None, :])


def circle_mask(overlay_width: int, overlay_height: int, radius: float) -> NDArray:
    """Boolean mask of overlay pixels inside the centred circle."""
    return _radial_distance(overlay_width, overlay_height) <= radius


def vignette_alpha(overlay_width: int, overlay_height: int, zoom: float) -> NDArray:
    """Alpha of the black vignette ring, zero outside the circle."""
    _check_zoom(zoom)
    radius = overlay_width / (2 * zoom)
    if radius <= 0:
        return np.zeros((overlay_height, overlay_width), dtype=np.float64)
    t = _radial_distance(overlay_width, overlay_height) / radius
    ramp = (t - VIGNETTE_START) / (1.0 - VIGNETTE_START)
    alpha = VIGNETTE_ALPHA * np.clip(ramp, 0.0, 1.0)
    alpha[t > 1.0] = 0.0
    return alpha


def sample_crop(
    source: NDArray, crop: CropRect, overlay_width: int, overlay_height: int,
) -> NDArray:
    """Scale ``crop`` of ``source`` to the overlay size, nearest neighbour.

    Samples falling outside ``source`` come back fully transparent.
    """
    src_h, src_w = source.shape[:2]
    xs = np.floor(
        crop.x + (np.arange(overlay_width) + 0.5) * crop.width / overlay_width
    ).astype(np.int64)
    ys = np.floor(
        crop.y + (np.arange(overlay_height) + 0.5) * crop.height / overlay_height
    ).astype(np.int64)
    valid = ((ys >= 0) & (ys < src_h))[:, None] & ((xs >= 0) & (xs < src_w))[None, :]

    out = np.zeros((overlay_height, overlay_width, 4), dtype=np.uint8)
    if src_h == 0 or src_w == 0:
        return out
    sampled = source[
        np.clip(ys, 0, src_h - 1)[:, None], np.clip(xs, 0, src_w - 1)[None, :]
    ]
    out[valid] = sampled[valid]
    return out


def _composite_over_black(top: NDArray, under_alpha: NDArray) -> NDArray:
    """Source-over composite of ``top`` onto black at ``under_alpha``."""
    top_alpha = top[..., 3].astype(np.float64) / 255.0
    out_alpha = top_alpha + under_alpha * (1.0 - top_alpha)
    premul = top[..., :3].astype(np.float64) * top_alpha[..., None]
    safe = np.where(out_alpha > 0, out_alpha, 1.0)
    rgb = premul / safe[..., None]

    result = np.empty(top.shape, dtype=np.uint8)
    result[..., :3] = np.clip(np.rint(rgb), 0, 255)
    result[..., 3] = np.clip(np.rint(out_alpha * 255.0), 0, 255)
    return result


def render_magnifier(
    source: NDArray, cursor: CursorSample, zoom: float, overlay: NDArray,
) -> MagnifierFrame:
    """Draw a zoomed, vignetted excerpt of ``source`` into ``overlay``.

    ``overlay`` is modified in place. The returned frame carries the viewport
    point the overlay's top-left corner should be anchored at.
    """
    source = _require_surface(source, "source")
    overlay = _require_surface(overlay, "overlay")
    _check_zoom(zoom)
    overlay_height, overlay_width = overlay.shape[:2]

    overlay[...] = 0

    radius = overlay_width / (2 * zoom)
    ring = vignette_alpha(overlay_width, overlay_height, zoom)
    clip = circle_mask(overlay_width, overlay_height, radius)

    crop = crop_rect(cursor.element, overlay_width, overlay_height, zoom)
    excerpt = sample_crop(source, crop, overlay_width, overlay_height)
    composed = _composite_over_black(excerpt, ring)
    overlay[clip] = composed[clip]

    return MagnifierFrame(anchor=cursor.browser, crop=crop)


class MagnifierController:
    """Visibility state machine that decides when the magnifier renders.

    ``render`` receives a :class:`CursorSample` for every move while the
    magnifier is visible. ``on_visibility`` (optional) is told about each
    state change so the caller can show or hide the overlay.
    """

    ENTER_EVENTS = frozenset({"mouseenter", "touchstart"})
    LEAVE_EVENTS = frozenset({"mouseleave", "touchend"})
    MOVE_EVENTS = frozenset({"mousemove", "touchmove"})

    def __init__(
        self,
        render: Callable[[CursorSample], object],
        on_visibility: Callable[[Visibility], object] | None = None,
    ) -> None:
        self.render = render
        self.on_visibility = on_visibility
        self.state = Visibility.HIDDEN

    def _set_state(self, state: Visibility) -> None:
        if state is self.state:
            return
        self.state = state
        if self.on_visibility is not None:
            self.on_visibility(state)

    def enter(self) -> None:
        self._set_state(Visibility.VISIBLE)

    def leave(self) -> None:
        self._set_state(Visibility.HIDDEN)

    def move(self, event: object) -> bool:
        """Render at ``event`` if visible; return whether a render happened."""
        if self.state is not Visibility.VISIBLE:
            return False
        self.render(cursor_sample(event))
        return True

    def handle(self, kind: str, event: object | None = None) -> bool:
        """Dispatch a DOM-style event name to the matching transition."""
        if kind in self.ENTER_EVENTS:
            self.enter()
            return False
        if kind in self.LEAVE_EVENTS:
            self.leave()
            return False
        if kind in self.MOVE_EVENTS:
            return self.move(event)
        raise UnsupportedInputError(f"Unsupported cursor event {kind!r}")
