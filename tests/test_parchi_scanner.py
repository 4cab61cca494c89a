"""Tests for the two-tier parchi scanner."""

import asyncio
import io
import json
import threading
from types import SimpleNamespace
from unittest.mock import AsyncMock

import pytest
from PIL import Image

from kuber.core.exceptions import ParchiExtractionException, VisionTierException
from kuber.services.vision import ParchiScanner, VisionExtractor
from kuber.services.vision import scanner as scanner_module
from kuber.services.vision.preprocess import encode_data_url


def photo():
    buffer = io.BytesIO()
    Image.new("RGB", (12, 12), (240, 240, 240)).save(buffer, format="JPEG")
    return encode_data_url(buffer.getvalue())


def groq_client(content=None, error=None):
    create = AsyncMock()
    if error is not None:
        create.side_effect = error
    else:
        create.return_value = SimpleNamespace(
            choices=[SimpleNamespace(message=SimpleNamespace(content=content))]
        )
    return SimpleNamespace(chat=SimpleNamespace(completions=SimpleNamespace(create=create)))


def test_vision_tier_result_is_used_when_it_succeeds(make_ocr):
    content = json.dumps({
        "items": [{"product": "Atta", "quantity": 10, "unit": "kg", "price": 450}, {"quantity": 2}],
        "totalAmount": 450
    })
    ocr = make_ocr("Sugar - 2 kg - 90")
    scanner = ParchiScanner(vision=VisionExtractor(client=groq_client(content)), ocr=ocr)

    data = asyncio.run(scanner.scan(photo()))

    assert data.source == "vision"
    assert data.confidence == 0.95
    assert [item.product for item in data.items] == ["Atta"]
    assert data.total_amount == 450.0
    assert ocr.images == []


def test_vision_request_carries_prompt_and_image():
    client = groq_client('{"items": []}')
    image = photo()

    asyncio.run(VisionExtractor(client=client).extract(image))

    kwargs = client.chat.completions.create.call_args.kwargs
    content = kwargs["messages"][0]["content"]
    assert content[0]["type"] == "text"
    assert content[1]["image_url"]["url"] == image


@pytest.mark.parametrize("client", [
    None,
    groq_client(error=RuntimeError("connection reset")),
    groq_client("I could not read this bill, sorry!"),
])
def test_any_vision_failure_falls_back_to_ocr(client, make_ocr):
    ocr = make_ocr("Atta - 10 kg - ₹450\nTotal ₹450")
    scanner = ParchiScanner(vision=VisionExtractor(client=client), ocr=ocr)

    data = asyncio.run(scanner.scan(photo()))

    assert data.source == "ocr"
    assert data.items[0].product == "Atta"
    assert data.total_amount == 450.0
    assert len(ocr.images) == 1


def test_ocr_receives_preprocessed_grayscale_jpeg(make_ocr):
    ocr = make_ocr("")
    scanner = ParchiScanner(vision=VisionExtractor(client=None), ocr=ocr)

    data = asyncio.run(scanner.scan(photo()))

    image = Image.open(io.BytesIO(ocr.images[0]))
    assert image.mode == "L"
    assert data.items == []


def test_both_tiers_failing_raises_extraction_error(make_ocr):
    scanner = ParchiScanner(vision=VisionExtractor(client=None), ocr=make_ocr(fail=True))

    with pytest.raises(ParchiExtractionException) as exc_info:
        asyncio.run(scanner.scan(photo()))

    assert exc_info.value.status_code == 422


def test_undecodable_image_fails_both_tiers(make_ocr):
    scanner = ParchiScanner(vision=VisionExtractor(client=None), ocr=make_ocr("Atta - 1 kg - 40"))

    with pytest.raises(ParchiExtractionException):
        asyncio.run(scanner.scan(encode_data_url(b"garbage")))


def test_vision_without_key_is_unavailable():
    extractor = VisionExtractor(client=None)

    assert not extractor.is_available
    with pytest.raises(VisionTierException):
        asyncio.run(extractor.extract_payload(photo()))


def test_response_without_choices_falls_back_to_ocr(make_ocr):
    create = AsyncMock(return_value=SimpleNamespace(choices=[]))
    client = SimpleNamespace(chat=SimpleNamespace(completions=SimpleNamespace(create=create)))
    ocr = make_ocr("Atta - 10 kg - 450")
    scanner = ParchiScanner(vision=VisionExtractor(client=client), ocr=ocr)

    data = asyncio.run(scanner.scan(photo()))

    assert data.source == "ocr"
    assert data.items[0].product == "Atta"


def test_unexpected_vision_error_falls_back_to_ocr(make_ocr):
    vision = VisionExtractor(client=groq_client('{"items": []}'))
    vision.extract = AsyncMock(side_effect=KeyError("items"))
    ocr = make_ocr("Atta - 10 kg - 450")

    data = asyncio.run(ParchiScanner(vision=vision, ocr=ocr).scan(photo()))

    assert data.source == "ocr"
    assert len(ocr.images) == 1


@pytest.mark.parametrize("total, expected", [
    ("510", 510.0),
    (510, 510.0),
    (True, None),
    ("about five hundred", None),
])
def test_vision_total_amount_is_coerced(total, expected):
    content = json.dumps({"items": [{"product": "Atta", "price": 450}], "totalAmount": total})

    data = asyncio.run(VisionExtractor(client=groq_client(content)).extract(photo()))

    assert data.total_amount == expected


def test_preprocessing_runs_off_the_event_loop_thread(make_ocr, monkeypatch):
    threads = []
    preprocess = scanner_module.preprocess_for_ocr

    def recording_preprocess(image_data_url):
        threads.append(threading.get_ident())
        return preprocess(image_data_url)

    monkeypatch.setattr(scanner_module, "preprocess_for_ocr", recording_preprocess)
    scanner = ParchiScanner(vision=VisionExtractor(client=None), ocr=make_ocr(""))

    asyncio.run(scanner.scan(photo()))

    assert threads and threads[0] != threading.get_ident()
