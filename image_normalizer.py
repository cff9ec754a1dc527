"""
image_normalizer.py — turns whatever the user sent into an upload-safe JPEG.

One policy, tuned for one constraint (the search service's upload limit):

  1. Decode the image (EXIF orientation applied, flattened to RGB).
  2. Downscale by an area heuristic: scale = min(1, sqrt(max_bytes / (w * h))).
     The heuristic only assumes encoded size is roughly proportional to pixel
     area; the real bound is enforced by step 3.
  3. Encode as JPEG at FIRST_PASS_QUALITY. If still over budget, re-encode the
     same resized buffer once at SECOND_PASS_QUALITY. If that is still over
     budget, give up with SizeUnachievable.

Two encodes at one scale is the whole retry policy: no binary search over
quality, no second resize.
"""
from __future__ import annotations

import asyncio
import logging
import math
from dataclasses import dataclass
from io import BytesIO
from typing import Callable, Optional

from PIL import Image, ImageOps, UnidentifiedImageError

import config
from exceptions import DecodeError, SizeUnachievable

logger = logging.getLogger(__name__)

OUTPUT_MEDIA_TYPE = "image/jpeg"

Encoder = Callable[[Image.Image, float], bytes]


@dataclass(frozen=True)
class RawImage:
    """The file exactly as the user sent it."""
    content: bytes
    media_type: Optional[str] = None     # None when the sender didn't declare one
    filename: str = "image"

    @property
    def byte_length(self) -> int:
        return len(self.content)


@dataclass(frozen=True)
class NormalizedImage:
    """Re-encoded upload payload. byte_length is always within the budget it was built for."""
    content: bytes
    width: int
    height: int
    quality: float                       # the pass that produced these bytes
    source_width: int
    source_height: int
    filename: str = "image.jpg"
    media_type: str = OUTPUT_MEDIA_TYPE

    @property
    def byte_length(self) -> int:
        return len(self.content)

    @property
    def was_resized(self) -> bool:
        return (self.width, self.height) != (self.source_width, self.source_height)


# ── Geometry ──────────────────────────────────────────────────────────────────

def compute_scale(width: int, height: int, max_bytes: int) -> float:
    """Uniform downscale factor from the area heuristic. Never upscales."""
    return min(1.0, math.sqrt(max_bytes / (width * height)))


def target_size(width: int, height: int, max_bytes: int) -> tuple[int, int]:
    """Resized dimensions: both sides scaled by the same factor, at least 1px each."""
    scale = compute_scale(width, height, max_bytes)
    return max(1, round(width * scale)), max(1, round(height * scale))


# ── Codec ─────────────────────────────────────────────────────────────────────

async def decode(raw: RawImage) -> Image.Image:
    """
    Decode raw bytes into an RGB pixel buffer.
    Raises DecodeError for empty blobs, non-image media types, or anything
    Pillow can't identify.
    """
    if raw.media_type and not raw.media_type.lower().startswith("image/"):
        raise DecodeError(f"Expected an image, got {raw.media_type}.")
    if not raw.content:
        raise DecodeError("The selected file is empty.")

    # Let the loop run other work before the (blocking) decode.
    await asyncio.sleep(0)

    try:
        img = Image.open(BytesIO(raw.content))
        img.load()
        img = ImageOps.exif_transpose(img)
        if img.mode != "RGB":
            img = img.convert("RGB")
    except (UnidentifiedImageError, Image.DecompressionBombError, OSError, SyntaxError, ValueError) as exc:
        logger.info("Could not decode %s (%d bytes): %s", raw.filename, raw.byte_length, exc)
        raise DecodeError() from exc
    return img


def encode_jpeg(image: Image.Image, quality: float) -> bytes:
    """Encode as JPEG. `quality` is a fraction of the encoder's 1–100 range."""
    buffer = BytesIO()
    image.save(buffer, "JPEG", quality=max(1, min(100, round(quality * 100))), optimize=True)
    return buffer.getvalue()


def _output_filename(filename: str) -> str:
    stem = filename.rsplit(".", 1)[0] if "." in filename else filename
    return f"{stem or 'image'}.jpg"


# ── Pipeline ──────────────────────────────────────────────────────────────────

async def normalize(
    raw: RawImage,
    max_bytes: int = config.MAX_UPLOAD_BYTES,
    *,
    encoder: Encoder = encode_jpeg,
    first_quality: Optional[float] = None,
    second_quality: Optional[float] = None,
) -> NormalizedImage:
    """
    Produce a JPEG of at most `max_bytes` bytes from `raw`.

    Raises:
        DecodeError:      raw is not a decodable image.
        SizeUnachievable: both quality passes are still over budget.
    """
    if max_bytes <= 0:
        raise ValueError(f"max_bytes must be positive, got {max_bytes}")

    first_quality = config.FIRST_PASS_QUALITY if first_quality is None else first_quality
    second_quality = config.SECOND_PASS_QUALITY if second_quality is None else second_quality

    img = await decode(raw)
    w0, h0 = img.size
    width, height = target_size(w0, h0, max_bytes)
    if (width, height) != (w0, h0):
        img = img.resize((width, height), Image.Resampling.LANCZOS)

    for quality in (first_quality, second_quality):
        content = encoder(img, quality)
        if len(content) <= max_bytes:
            logger.info(
                "Normalised %s: %dx%d → %dx%d, q=%.2f, %d → %d bytes",
                raw.filename, w0, h0, width, height, quality, raw.byte_length, len(content),
            )
            return NormalizedImage(
                content=content,
                width=width,
                height=height,
                quality=quality,
                source_width=w0,
                source_height=h0,
                filename=_output_filename(raw.filename),
            )
        logger.info(
            "%s: %d bytes at q=%.2f exceeds budget of %d",
            raw.filename, len(content), quality, max_bytes,
        )

    raise SizeUnachievable()
