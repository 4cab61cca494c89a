"""
Image preprocessing for handwritten and printed parchis.
Grayscale conversion followed by a contrast stretch before OCR.
"""

import base64
import binascii
import io
import re
from typing import Optional, Tuple

import numpy as np
from PIL import Image

from kuber.config import get_settings
from kuber.core.exceptions import ImageDecodeException

settings = get_settings()

DATA_URL_PATTERN = re.compile(r"^data:(?P<mime>[\w/+.-]+)?(?:;[\w=-]+)*;base64,(?P<data>.*)$", re.DOTALL)
LUMA_WEIGHTS = np.array([0.299, 0.587, 0.114], dtype=np.float64)


def decode_data_url(image_data_url: str) -> Tuple[str, bytes]:
    """Split a data URL into its mime type and raw bytes. Bare base64 is accepted."""
    if not image_data_url:
        raise ImageDecodeException("empty image")

    match = DATA_URL_PATTERN.match(image_data_url.strip())
    mime = "image/jpeg"
    payload = image_data_url.strip()
    if match:
        mime = match.group("mime") or mime
        payload = match.group("data")

    try:
        return mime, base64.b64decode(payload, validate=False)
    except (binascii.Error, ValueError) as e:
        raise ImageDecodeException(str(e))


def encode_data_url(image_bytes: bytes, mime: str = "image/jpeg") -> str:
    return f"data:{mime};base64,{base64.b64encode(image_bytes).decode('ascii')}"


def contrast_factor(contrast: float) -> float:
    return (259 * (contrast + 255)) / (255 * (259 - contrast))


def to_grayscale(pixels: np.ndarray) -> np.ndarray:
    """Luminance of an RGB(A) array, as float."""
    pixels = np.asarray(pixels, dtype=np.float64)
    if pixels.ndim == 2:
        return pixels
    return pixels[..., :3] @ LUMA_WEIGHTS


def stretch_contrast(gray: np.ndarray, contrast: float = 1.5) -> np.ndarray:
    """
    Push values away from mid-grey and clamp to [0, 255].

    Saturated pixels stay saturated, so an already binarized image
    comes back unchanged.
    """
    factor = contrast_factor(contrast)
    stretched = factor * (np.asarray(gray, dtype=np.float64) - 128) + 128
    return np.clip(stretched, 0, 255)


def preprocess_for_ocr(
    image_data_url: str,
    contrast: Optional[float] = None,
    quality: Optional[int] = None
) -> bytes:
    """Decode, grayscale, contrast-stretch and re-encode as JPEG."""
    contrast = settings.OCR_CONTRAST if contrast is None else contrast
    quality = settings.OCR_JPEG_QUALITY if quality is None else quality

    _, raw = decode_data_url(image_data_url)
    try:
        image = Image.open(io.BytesIO(raw)).convert("RGB")
    except Exception as e:
        raise ImageDecodeException(str(e))

    gray = stretch_contrast(to_grayscale(np.asarray(image)), contrast)
    processed = Image.fromarray(gray.round().astype(np.uint8))

    buffer = io.BytesIO()
    processed.save(buffer, format="JPEG", quality=quality)
    return buffer.getvalue()
