"""
Raster map canvas.

PillowCanvas implements MapCanvas by keeping the materialized descriptors
and painting them onto a Pillow image on demand, north-up, with Web-Mercator
projection around the current camera. There is no tile background; it is
meant for headless snapshots of a replay session.
"""

import logging
import math
from functools import lru_cache
from typing import List, Sequence, Tuple

import numpy as np
from PIL import Image, ImageColor, ImageDraw, ImageFont

from constants import COLORS, DEFAULT_CENTER, DEFAULT_ZOOM, METERS_PER_DEGREE
from overlays import MapCanvas, OverlayDescriptor, OverlayKind, Primitive
from viewport import latlon_to_pixel

logger = logging.getLogger(__name__)

Point = Tuple[float, float]

DIRECTIONAL_KINDS = (OverlayKind.LIVE_VEHICLE, OverlayKind.SAMPLE_MARKER)

LABEL_FONT_FILES = ("DejaVuSans-Bold.ttf", "DejaVuSans.ttf", "Arial.ttf")


@lru_cache(maxsize=None)
def _load_label_font(px: int) -> ImageFont.FreeTypeFont:
    for name in LABEL_FONT_FILES:
        try:
            return ImageFont.truetype(name, px)
        except OSError:
            continue
    return ImageFont.load_default(size=px)


def label_font(size: float) -> ImageFont.FreeTypeFont:
    """
    Bold font for trip numbers and marker labels.

    Label sizes come from the zoom sizing rules and are fractional; they are
    rounded to whole pixels so nearby zoom levels share one cached font.
    """
    return _load_label_font(max(1, int(round(size))))


def _rgba(color: str, opacity: float) -> Tuple[int, int, int, int]:
    r, g, b = ImageColor.getrgb(color)[:3]
    return (r, g, b, int(round(255 * max(0.0, min(1.0, opacity)))))


def dash_segments(points: Sequence[Point], dash: Tuple[float, float]) -> List[Tuple[Point, Point]]:
    """
    Split a screen-space polyline into the "on" pieces of a dash pattern.

    Args:
        points: Polyline vertices in pixels
        dash: (on_length, off_length) in pixels

    Returns:
        List of (start, end) pixel segments to draw
    """
    on_len, off_len = dash
    pieces = []
    drawing = True
    remaining = on_len

    for (x1, y1), (x2, y2) in zip(points, points[1:]):
        seg_len = math.hypot(x2 - x1, y2 - y1)
        pos = 0.0
        while seg_len - pos > 1e-9:
            step = min(remaining, seg_len - pos)
            if drawing:
                t1, t2 = pos / seg_len, (pos + step) / seg_len
                pieces.append(((x1 + (x2 - x1) * t1, y1 + (y2 - y1) * t1),
                               (x1 + (x2 - x1) * t2, y1 + (y2 - y1) * t2)))
            pos += step
            remaining -= step
            if remaining <= 1e-9:
                drawing = not drawing
                remaining = on_len if drawing else off_len
    return pieces


class PillowCanvas(MapCanvas):
    """Raster MapCanvas backed by Pillow.

    Args:
        width: Image width in pixels
        height: Image height in pixels
        center: Initial camera center
        zoom: Initial zoom level
    """

    def __init__(self, width: int = 1024, height: int = 768,
                 center: Point = DEFAULT_CENTER, zoom: float = DEFAULT_ZOOM):
        super().__init__(size=(width, height), center=center, zoom=zoom)
        self.drawables: List[OverlayDescriptor] = []

    def draw_polyline(self, descriptor: OverlayDescriptor) -> None:
        self.drawables.append(descriptor)

    def draw_marker(self, descriptor: OverlayDescriptor) -> None:
        self.drawables.append(descriptor)

    def draw_shape(self, descriptor: OverlayDescriptor) -> None:
        self.drawables.append(descriptor)

    def remove_all(self) -> None:
        self.drawables.clear()

    def to_screen(self, lat: float, lng: float) -> Point:
        """Project lat/lng to pixel coordinates in the current view."""
        cx, cy = latlon_to_pixel(self.center[0], self.center[1], self.zoom)
        px, py = latlon_to_pixel(lat, lng, self.zoom)
        width, height = self.size
        return (px - cx + width / 2.0, py - cy + height / 2.0)

    def _meters_to_pixels(self, lat: float, radius_m: float) -> float:
        _, y1 = latlon_to_pixel(lat, 0.0, self.zoom)
        _, y2 = latlon_to_pixel(lat + radius_m / METERS_PER_DEGREE, 0.0, self.zoom)
        return abs(y2 - y1)

    def render(self) -> np.ndarray:
        """Paint every materialized drawable in z-order.

        Returns:
            RGB numpy array of shape (height, width, 3)
        """
        width, height = self.size
        img = Image.new("RGBA", (width, height), COLORS.BACKGROUND + (255,))

        # Stable sort: equal z keeps materialization order
        for descriptor in sorted(self.drawables, key=lambda d: d.z_priority):
            layer = Image.new("RGBA", (width, height), (0, 0, 0, 0))
            draw = ImageDraw.Draw(layer)
            if descriptor.primitive == Primitive.POLYLINE:
                self._paint_polyline(draw, descriptor)
            elif descriptor.primitive == Primitive.MARKER:
                self._paint_marker(draw, descriptor)
            elif descriptor.primitive == Primitive.CIRCLE:
                self._paint_circle(draw, descriptor)
            else:
                self._paint_polygon(draw, descriptor)
            img = Image.alpha_composite(img, layer)

        return np.array(img.convert("RGB"))

    def save(self, path: str) -> None:
        """Render and write a PNG snapshot."""
        Image.fromarray(self.render()).save(path)
        logger.info("Saved map snapshot to %s", path)

    def _paint_polyline(self, draw: ImageDraw.ImageDraw, descriptor: OverlayDescriptor) -> None:
        style = descriptor.style
        points = [self.to_screen(lat, lng) for lat, lng in descriptor.geometry]
        if len(points) < 2:
            return
        fill = _rgba(style.color, style.opacity)
        width = max(1, int(round(style.weight)))
        if style.dash:
            for start, end in dash_segments(points, style.dash):
                draw.line([start, end], fill=fill, width=width)
        else:
            draw.line(points, fill=fill, width=width, joint="curve")

    def _paint_marker(self, draw: ImageDraw.ImageDraw, descriptor: OverlayDescriptor) -> None:
        style = descriptor.style
        x, y = self.to_screen(*descriptor.anchor)
        radius = (style.diameter or 10) / 2.0
        outline = _rgba(COLORS.MARKER_OUTLINE, 1.0)

        draw.ellipse([x - radius, y - radius, x + radius, y + radius],
                     fill=_rgba(style.color, style.opacity), outline=outline,
                     width=max(1, int(radius / 5)))

        if descriptor.kind in DIRECTIONAL_KINDS:
            rad = math.radians(style.heading)
            tip = (x + radius * math.sin(rad), y - radius * math.cos(rad))
            draw.line([(x, y), tip], fill=outline, width=2)
        elif style.label:
            if style.badge_size:
                # Trip number in a small badge at the marker's upper right
                bx, by = x + radius * 0.7, y - radius * 0.7
                half = style.badge_size / 2.0
                draw.ellipse([bx - half, by - half, bx + half, by + half],
                             fill=outline, outline=_rgba(style.color, 1.0), width=1)
                draw.text((bx, by), style.label, fill=_rgba(style.color, 1.0),
                          font=label_font(style.font_size or 10), anchor="mm")
            else:
                draw.text((x, y), style.label, fill=outline,
                          font=label_font(style.font_size or radius), anchor="mm")

    def _paint_circle(self, draw: ImageDraw.ImageDraw, descriptor: OverlayDescriptor) -> None:
        style = descriptor.style
        lat, lng = descriptor.anchor
        x, y = self.to_screen(lat, lng)
        r = self._meters_to_pixels(lat, style.radius_m or 0.0)
        draw.ellipse([x - r, y - r, x + r, y + r],
                     fill=_rgba(style.color, style.fill_opacity),
                     outline=_rgba(style.color, style.opacity),
                     width=max(1, int(round(style.weight))))

    def _paint_polygon(self, draw: ImageDraw.ImageDraw, descriptor: OverlayDescriptor) -> None:
        style = descriptor.style
        points = [self.to_screen(lat, lng) for lat, lng in descriptor.geometry]
        if len(points) < 3:
            return
        draw.polygon(points, fill=_rgba(style.color, style.fill_opacity),
                     outline=_rgba(style.color, style.opacity))
