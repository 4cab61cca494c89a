"""Tests for parchi image preprocessing."""

import base64
import io

import numpy as np
import pytest
from PIL import Image

from kuber.core.exceptions import ImageDecodeException
from kuber.services.vision.preprocess import (
    contrast_factor,
    decode_data_url,
    encode_data_url,
    preprocess_for_ocr,
    stretch_contrast,
    to_grayscale
)


def make_data_url(color=(200, 120, 40), size=(8, 6), fmt="PNG", mime="image/png"):
    buffer = io.BytesIO()
    Image.new("RGB", size, color).save(buffer, format=fmt)
    return encode_data_url(buffer.getvalue(), mime)


def test_decode_data_url_round_trip():
    mime, raw = decode_data_url("data:image/png;base64," + base64.b64encode(b"abc").decode())

    assert mime == "image/png"
    assert raw == b"abc"


def test_decode_bare_base64_defaults_to_jpeg():
    mime, raw = decode_data_url(base64.b64encode(b"xyz").decode())

    assert mime == "image/jpeg"
    assert raw == b"xyz"


def test_decode_empty_raises():
    with pytest.raises(ImageDecodeException):
        decode_data_url("")


def test_grayscale_uses_luma_weights():
    pixels = np.array([[[255, 0, 0], [0, 255, 0], [0, 0, 255]]], dtype=np.uint8)

    gray = to_grayscale(pixels)

    assert gray.shape == (1, 3)
    assert gray[0, 0] == pytest.approx(76.245)
    assert gray[0, 1] == pytest.approx(149.685)
    assert gray[0, 2] == pytest.approx(29.07)


def test_grayscale_ignores_alpha():
    pixels = np.array([[[10, 10, 10, 0]]], dtype=np.uint8)
    assert to_grayscale(pixels)[0, 0] == pytest.approx(10.0)


def test_contrast_keeps_mid_grey_and_saturated_pixels():
    gray = np.array([0.0, 128.0, 255.0])

    stretched = stretch_contrast(gray, 1.5)

    assert stretched[1] == pytest.approx(128.0)
    assert stretched[0] == 0.0
    assert stretched[2] == 255.0


def test_contrast_pushes_values_away_from_mid_grey():
    stretched = stretch_contrast(np.array([100.0, 160.0]), 1.5)

    assert contrast_factor(1.5) > 1
    assert stretched[0] < 100.0
    assert stretched[1] > 160.0


def test_preprocess_outputs_grayscale_jpeg():
    processed = preprocess_for_ocr(make_data_url(size=(10, 4)))

    image = Image.open(io.BytesIO(processed))
    assert image.format == "JPEG"
    assert image.mode == "L"
    assert image.size == (10, 4)


def test_preprocess_rejects_non_image():
    with pytest.raises(ImageDecodeException):
        preprocess_for_ocr(encode_data_url(b"definitely not an image", "image/png"))
