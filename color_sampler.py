"""
Colour sampling — reduces an image to at most five representative colours.

The image is shrunk into a 100×100 box first, so the work per call is a
small constant no matter how large the upload is.
"""
from __future__ import annotations

import io
import logging
import math

from PIL import Image, UnidentifiedImageError

from errors import ImageDecodeError
from soil_result import ColorSample, SampledColor

logger = logging.getLogger(__name__)

MAX_SIZE          = 100   # longer side after downscale
PIXEL_STRIDE      = 10    # read every 10th pixel of the RGBA buffer
ALPHA_THRESHOLD   = 128   # pixels at or below this opacity are ignored
CLUSTER_THRESHOLD = 50.0  # max RGB distance to join an existing cluster
TOP_COLORS        = 5


def rgb_distance(a, b) -> float:
    return math.sqrt((a[0] - b[0]) ** 2 + (a[1] - b[1]) ** 2 + (a[2] - b[2]) ** 2)


def _round_half_up(value: float) -> int:
    return int(math.floor(value + 0.5))


class _Cluster:
    __slots__ = ("seed", "count", "totals")

    def __init__(self, seed: tuple[int, int, int]):
        self.seed = seed
        self.count = 0
        self.totals = [0, 0, 0]

    def add(self, rgb: tuple[int, int, int]) -> None:
        self.count += 1
        self.totals[0] += rgb[0]
        self.totals[1] += rgb[1]
        self.totals[2] += rgb[2]

    def mean(self) -> tuple[int, int, int]:
        r, g, b = (_round_half_up(t / self.count) for t in self.totals)
        return (r, g, b)


class ColorSampler:
    """Extracts dominant colours from raw image bytes."""

    def __init__(
        self,
        max_size: int = MAX_SIZE,
        stride: int = PIXEL_STRIDE,
        threshold: float = CLUSTER_THRESHOLD,
        top_n: int = TOP_COLORS,
    ):
        self.max_size  = max_size
        self.stride    = stride
        self.threshold = threshold
        self.top_n     = top_n

    def decode(self, image_bytes: bytes) -> Image.Image:
        """Decode and downscale. Raises ImageDecodeError on unreadable input."""
        if not image_bytes:
            raise ImageDecodeError("Image is empty")
        try:
            img = Image.open(io.BytesIO(image_bytes))
            # JPEGs decode at a reduced scale; other formats ignore this
            img.draft("RGB", (self.max_size, self.max_size))
            img.load()
            img = img.convert("RGBA")
        except (UnidentifiedImageError, OSError, ValueError, Image.DecompressionBombError) as exc:
            raise ImageDecodeError(f"Could not decode image: {exc}") from exc

        ratio = min(self.max_size / img.width, self.max_size / img.height)
        size = (max(1, int(img.width * ratio)), max(1, int(img.height * ratio)))
        if size != img.size:
            img = img.resize(size, Image.Resampling.BILINEAR)
        return img

    def sample_pixels(self, img: Image.Image) -> list[tuple[int, int, int]]:
        """Opaque RGB triplets at a fixed stride over the RGBA buffer."""
        raw = img.tobytes()
        step = 4 * self.stride
        pixels = []
        for i in range(0, len(raw) - 3, step):
            if raw[i + 3] > ALPHA_THRESHOLD:
                pixels.append((raw[i], raw[i + 1], raw[i + 2]))
        return pixels

    def cluster(self, pixels: list[tuple[int, int, int]]) -> list[SampledColor]:
        if not pixels:
            return []

        clusters: list[_Cluster] = []
        for px in pixels:
            best, best_dist = None, self.threshold
            for c in clusters:
                d = rgb_distance(px, c.seed)
                if d < best_dist:
                    best, best_dist = c, d
            if best is None:
                best = _Cluster(px)
                clusters.append(best)
            best.add(px)

        # sorted() is stable: equal-sized clusters keep creation order
        ranked = sorted(clusters, key=lambda c: c.count, reverse=True)[: self.top_n]
        total = len(pixels)
        return [SampledColor(rgb=c.mean(), frequency=c.count / total) for c in ranked]

    def sample(self, image_bytes: bytes) -> ColorSample:
        img = self.decode(image_bytes)
        pixels = self.sample_pixels(img)
        colors = self.cluster(pixels)
        logger.debug(
            "Sampled %d pixels into %d colours: %s",
            len(pixels), len(colors), ", ".join(c.hex for c in colors),
        )
        return ColorSample(colors=colors, pixel_count=len(pixels))
