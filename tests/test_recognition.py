"""
Тесты движка распознавания и сборки текста из image_to_data.

Tesseract в тестах не вызывается: функции pytesseract подменяются.
"""

import pytest

from conftest import make_image_bytes
from ocr_app.exceptions import (
    EngineInitError,
    RecognitionError,
    RecognitionTimeoutError,
)
from ocr_app.services import recognition
from ocr_app.services.recognition import (
    EngineProvider,
    TesseractEngine,
    assemble_text_from_data,
)
from ocr_app.services.retry import RetryPolicy


def _data(rows):
    """rows: список (block, par, line, text)."""
    return {
        "block_num": [r[0] for r in rows],
        "par_num": [r[1] for r in rows],
        "line_num": [r[2] for r in rows],
        "text": [r[3] for r in rows],
        "conf": [90 for _ in rows],
    }


def test_assemble_text_structure():
    data = _data(
        [
            (1, 1, 1, "Hello"),
            (1, 1, 1, "world"),
            (1, 1, 2, "second"),
            (1, 1, 2, "  "),
            (2, 1, 1, "Next"),
            (2, 1, 1, "block"),
        ]
    )

    assert assemble_text_from_data(data) == "Hello world\nsecond\n\nNext block"


def test_assemble_text_orders_by_position_numbers():
    data = _data([(2, 1, 1, "B"), (1, 1, 2, "A2"), (1, 1, 1, "A1")])

    assert assemble_text_from_data(data) == "A1\nA2\n\nB"


def test_assemble_text_without_words_is_empty():
    assert assemble_text_from_data(_data([(1, 1, 1, ""), (1, 1, 1, " ")])) == ""


@pytest.fixture
def fake_tesseract(monkeypatch):
    """Подменяет pytesseract: версия, языки и image_to_data."""
    state = {
        "languages": ["eng", "osd"],
        "data": _data([(1, 1, 1, "Invoice"), (1, 1, 1, "42")]),
        "error": None,
        "calls": [],
    }

    def image_to_data(image, lang, config, timeout, output_type):
        state["calls"].append({"lang": lang, "config": config, "timeout": timeout})
        if state["error"] is not None:
            raise state["error"]
        return state["data"]

    pt = recognition.pytesseract
    monkeypatch.setattr(pt, "get_tesseract_version", lambda: "5.3.0")
    monkeypatch.setattr(pt, "get_languages", lambda config="": state["languages"])
    monkeypatch.setattr(pt, "image_to_data", image_to_data)
    return state


def test_engine_recognizes_text(fake_tesseract):
    engine = TesseractEngine(["eng"], oem=1, psm=6, timeout=30)

    text = engine.recognize(make_image_bytes("PNG"))

    assert text == "Invoice 42"
    assert fake_tesseract["calls"] == [
        {"lang": "eng", "config": "--oem 1 --psm 6", "timeout": 30}
    ]


def test_engine_requires_language_data(fake_tesseract):
    with pytest.raises(EngineInitError):
        TesseractEngine(["rus", "eng"])


def test_engine_requires_tesseract_binary(monkeypatch):
    def missing():
        raise recognition.pytesseract.TesseractNotFoundError()

    monkeypatch.setattr(recognition.pytesseract, "get_tesseract_version", missing)

    with pytest.raises(EngineInitError):
        TesseractEngine(["eng"])


def test_engine_rejects_unreadable_image(fake_tesseract):
    engine = TesseractEngine(["eng"])

    with pytest.raises(RecognitionError):
        engine.recognize(b"\xff\xd8\xffnot really a jpeg")


def test_engine_maps_tesseract_timeout(fake_tesseract):
    fake_tesseract["error"] = RuntimeError("Tesseract process timeout")
    engine = TesseractEngine(["eng"], timeout=1)

    with pytest.raises(RecognitionTimeoutError):
        engine.recognize(make_image_bytes("JPEG"))


def test_engine_maps_tesseract_failure(fake_tesseract):
    fake_tesseract["error"] = recognition.pytesseract.TesseractError(1, "bad things")
    engine = TesseractEngine(["eng"])

    with pytest.raises(RecognitionError) as exc_info:
        engine.recognize(make_image_bytes("JPEG"))
    assert not isinstance(exc_info.value, RecognitionTimeoutError)


def test_released_engine_refuses_work(fake_tesseract):
    engine = TesseractEngine(["eng"])
    engine.release()

    with pytest.raises(RecognitionError):
        engine.recognize(make_image_bytes("JPEG"))


# =============================================================================
# EngineProvider
# =============================================================================


def test_provider_creates_engine_per_checkout_and_releases(engine_factory, retry_policy):
    provider = EngineProvider(factory=engine_factory, retry=retry_policy)

    with provider.acquire() as first:
        pass
    with provider.acquire() as second:
        pass

    assert first is not second
    assert first.released.is_set()
    assert second.released.is_set()


def test_provider_releases_engine_on_error(engine_factory, retry_policy):
    provider = EngineProvider(factory=engine_factory, retry=retry_policy)

    with pytest.raises(ValueError):
        with provider.acquire():
            raise ValueError("recognition blew up")

    assert engine_factory.engines[0].released.is_set()


def test_provider_retries_engine_creation(engine_factory):
    engine_factory.init_failures = 2
    engine_factory.init_error = EngineInitError("language data still loading")
    delays = []
    provider = EngineProvider(
        factory=engine_factory,
        retry=RetryPolicy(max_attempts=3, base_delay=0.1, sleep=delays.append),
    )

    with provider.acquire() as engine:
        assert engine is engine_factory.engines[0]

    assert len(delays) == 2
