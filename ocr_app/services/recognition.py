"""
Движок распознавания текста (Tesseract).

Жизненный цикл движка: создание -> распознавание -> освобождение.
Движок не разделяется между вызовами: EngineProvider выдаёт отдельный
экземпляр на каждую обработку и освобождает его в любом случае.

Оптимизация: один вызов image_to_data вместо image_to_string + image_to_data —
текст собирается из тех же данных с учётом структуры блоков/строк.
"""

import io
import logging
import time
from contextlib import contextmanager
from typing import Callable, Iterator, Optional, Protocol

import pytesseract
from PIL import Image, UnidentifiedImageError

from ocr_app.config import settings
from ocr_app.exceptions import (
    EngineInitError,
    RecognitionError,
    RecognitionTimeoutError,
)
from ocr_app.services.retry import RetryPolicy

logger = logging.getLogger(__name__)


class RecognitionEngine(Protocol):
    def recognize(self, image_bytes: bytes) -> str:
        ...

    def release(self) -> None:
        ...


class TesseractEngine:
    """
    Обёртка над Tesseract для одного вызова распознавания.

    При создании проверяет наличие Tesseract и языковых данных —
    эти ошибки временные (EngineInitError) и повторяются политикой.

    Args:
        languages: языки Tesseract (например ["eng"], ["rus", "eng"])
        oem: OCR Engine Mode
        psm: Page Segmentation Mode
        timeout: лимит на один вызов Tesseract, сек
    """

    def __init__(
        self,
        languages: list[str],
        oem: int = 3,
        psm: int = 3,
        timeout: float = 120.0,
    ):
        self.lang = "+".join(languages)
        self.config = f"--oem {oem} --psm {psm}"
        self.timeout = timeout
        self.released = False

        try:
            self.version = str(pytesseract.get_tesseract_version())
            available = set(pytesseract.get_languages(config=""))
        except (pytesseract.TesseractNotFoundError, pytesseract.TesseractError, OSError) as e:
            raise EngineInitError(f"Tesseract is not available: {e}")

        missing = [lang for lang in languages if lang not in available]
        if missing:
            raise EngineInitError(f"Tesseract language data not loaded: {missing}")

        logger.debug(f"Tesseract {self.version} готов, языки: {self.lang}")

    @classmethod
    def from_settings(cls) -> "TesseractEngine":
        return cls(
            languages=settings.ocr_languages,
            oem=settings.ocr_oem,
            psm=settings.ocr_psm,
            timeout=settings.recognition_timeout_seconds,
        )

    def recognize(self, image_bytes: bytes) -> str:
        """
        Распознаёт текст на изображении.

        Args:
            image_bytes: содержимое JPEG/PNG файла

        Returns:
            str: распознанный текст (пустая строка, если текста нет)

        Raises:
            RecognitionError: изображение не читается или Tesseract упал
            RecognitionTimeoutError: Tesseract не уложился в timeout
        """
        if self.released:
            raise RecognitionError("Recognition engine already released")

        try:
            with Image.open(io.BytesIO(image_bytes)) as image:
                image.load()
                data = pytesseract.image_to_data(
                    image,
                    lang=self.lang,
                    config=self.config,
                    timeout=self.timeout,
                    output_type=pytesseract.Output.DICT,
                )
        except pytesseract.TesseractNotFoundError as e:
            raise RecognitionError(f"Tesseract is not available: {e}")
        except (UnidentifiedImageError, OSError) as e:
            raise RecognitionError(f"Cannot read image: {e}")
        except pytesseract.TesseractError as e:
            raise RecognitionError(f"Tesseract failed: {e.message or e}")
        except RuntimeError as e:
            # pytesseract сообщает о таймауте через RuntimeError
            if "timeout" in str(e).lower():
                raise RecognitionTimeoutError(
                    f"Recognition timed out after {self.timeout:.0f}s"
                )
            raise RecognitionError(str(e))

        return assemble_text_from_data(data)

    def release(self) -> None:
        self.released = True


def assemble_text_from_data(data: dict) -> str:
    """
    Собирает текст из словаря image_to_data с правильной структурой.

    Алгоритм:
        - Слова на одной строке (line_num) соединяются пробелами
        - Разные строки в одном блоке — новая строка (\\n)
        - Разные блоки — пустая строка между ними (\\n\\n)

    Args:
        data: словарь от pytesseract.image_to_data()

    Returns:
        str: собранный текст
    """
    # Структура: {block_num: {par_num: {line_num: [words]}}}
    blocks: dict = {}

    for i, raw_word in enumerate(data["text"]):
        word = str(raw_word).strip()
        if not word:  # Пропускаем пустые записи
            continue

        lines = blocks.setdefault(data["block_num"][i], {}).setdefault(
            data["par_num"][i], {}
        )
        lines.setdefault(data["line_num"][i], []).append(word)

    result_blocks = []
    for block_num in sorted(blocks):
        block_lines = []
        for par_num in sorted(blocks[block_num]):
            for line_num in sorted(blocks[block_num][par_num]):
                block_lines.append(" ".join(blocks[block_num][par_num][line_num]))
        result_blocks.append("\n".join(block_lines))

    # Блоки разделяем двойным переносом строки
    return "\n\n".join(result_blocks)


class EngineProvider:
    """
    Выдача движков на время одного вызова.

    Каждый acquire() создаёт новый движок (создание повторяется политикой
    retry) и гарантированно освобождает его на выходе — и при ошибке.

    Args:
        factory: функция создания движка
        retry: политика повторов для создания
    """

    def __init__(
        self,
        factory: Callable[[], RecognitionEngine] = TesseractEngine.from_settings,
        retry: Optional[RetryPolicy] = None,
    ):
        self.factory = factory
        self.retry = retry or RetryPolicy.from_settings()

    @contextmanager
    def acquire(self) -> Iterator[RecognitionEngine]:
        start = time.perf_counter()
        engine = self.retry.call(self.factory)
        init_ms = int((time.perf_counter() - start) * 1000)
        logger.info(f"   Engine: создан за {init_ms}ms")
        try:
            yield engine
        finally:
            try:
                engine.release()
            except Exception as e:
                logger.warning(f"Ошибка освобождения движка: {e}")
            else:
                logger.info("   Engine: освобождён")
