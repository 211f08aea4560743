"""
Процессор OCR — оркестрация обработки загруженного изображения.

Содержит:
    - validate_upload: проверка файла до любой обработки
    - OcrProcessor: главный сервис, координирующий пайплайн
      store -> recognize -> persist, а также чтение и удаление результатов

Гарантии process_image:
    - ровно одна запись OcrResult на каждый вызов (успех или ошибка)
    - ошибки хранилища/Tesseract/таймаут не пробрасываются, а сохраняются
      в результат со status=failed
    - запись создаётся только после того, как исход известен
    - движок Tesseract освобождается в любом случае
"""

import asyncio
import functools
import logging
import time
from typing import Optional

from starlette.concurrency import run_in_threadpool

from ocr_app.config import Settings, settings
from ocr_app.exceptions import (
    AppError,
    ForbiddenError,
    NotFoundError,
    StorageError,
    UploadValidationError,
)
from ocr_app.models import OcrResult
from ocr_app.schemas import AuthContext, ImageUpload, OcrResultResponse, ResultStatus
from ocr_app.services.recognition import EngineProvider
from ocr_app.services.result_store import ResultStore
from ocr_app.services.retry import RetryPolicy
from ocr_app.services.storage import ObjectStorage, build_storage_key

logger = logging.getLogger(__name__)

# Сигнатуры допустимых форматов
IMAGE_SIGNATURES = {
    "jpeg": b"\xff\xd8\xff",
    "png": b"\x89PNG\r\n\x1a\n",
}


def validate_upload(
    filename: Optional[str],
    content_type: Optional[str],
    data: Optional[bytes],
    config: Optional[Settings] = None,
) -> ImageUpload:
    """
    Валидирует загруженный файл.

    Проверяет:
        - Наличие файла
        - Тип файла (allow-list: JPEG, PNG)
        - Непустое содержимое
        - Размер файла (не больше max_file_size_mb)
        - Сигнатуру JPEG/PNG

    Args:
        filename: имя файла от клиента
        content_type: MIME тип от клиента
        data: содержимое файла
        config: настройки (по умолчанию глобальные)

    Returns:
        ImageUpload: провалидированное изображение

    Raises:
        UploadValidationError: с кодом нарушенного ограничения
    """
    config = config or settings

    if data is None:
        raise UploadValidationError("No image file uploaded", "missing_file")

    content_type = (content_type or "").strip().lower()
    if content_type not in config.allowed_content_types:
        raise UploadValidationError(
            "Invalid file type. Please upload a valid image (JPEG, PNG). "
            f"Received: {content_type}",
            "invalid_file_type",
        )

    if not data:
        raise UploadValidationError("Uploaded file is empty", "empty_file")

    if len(data) > config.max_file_size_bytes:
        raise UploadValidationError(
            f"File size too large: {len(data)} bytes. "
            f"Maximum size is {config.max_file_size_mb}MB",
            "file_too_large",
        )

    if not any(data.startswith(sig) for sig in IMAGE_SIGNATURES.values()):
        raise UploadValidationError(
            "File is not a valid JPEG or PNG image", "invalid_image"
        )

    return ImageUpload(
        filename=filename or "image",
        content_type=content_type,
        data=data,
    )


class OcrProcessor:
    """
    Оркестратор обработки изображений и доступа к результатам.

    Args:
        results: хранилище результатов
        storage: объектное хранилище изображений
        engines: выдача движков распознавания
        retry: политика повторов для вызовов хранилища
        config: настройки (таймауты, TTL ссылок)
    """

    def __init__(
        self,
        results: ResultStore,
        storage: ObjectStorage,
        engines: EngineProvider,
        retry: Optional[RetryPolicy] = None,
        config: Optional[Settings] = None,
    ):
        self.results = results
        self.storage = storage
        self.engines = engines
        self.retry = retry or RetryPolicy.from_settings()
        self.config = config or settings

    async def process_image(self, auth: AuthContext, upload: ImageUpload) -> OcrResult:
        """
        Обрабатывает одно загруженное изображение.

        Пайплайн:
            1. Генерация уникального ключа хранилища
            2. Запись изображения в хранилище (с повторами)
            3. Получение движка Tesseract
            4. Распознавание исходного буфера (те же байты, что записаны)
            5/6. Сохранение результата: success или failed
            7. Освобождение движка (в потоке обработки, всегда)

        Шаги 2-4 выполняются в потоке под общим таймаутом
        processing_timeout_seconds.

        Args:
            auth: аутентифицированный пользователь
            upload: провалидированное изображение

        Returns:
            OcrResult: сохранённый результат (success или failed)
        """
        total_start = time.perf_counter()
        key = build_storage_key(upload.filename)
        timeout = self.config.processing_timeout_seconds

        logger.info("=" * 60)
        logger.info("НОВЫЙ ЗАПРОС OCR")
        logger.info(f"   Пользователь: {auth.user_id}")
        logger.info(f"   Файл: {upload.filename} ({upload.size_bytes / 1024:.1f} KB)")
        logger.info(f"   Ключ: {key}")
        logger.info("=" * 60)

        extracted_text = ""
        status = ResultStatus.SUCCESS
        error: Optional[str] = None

        # run_in_executor: по таймауту поток можно оставить, не дожидаясь его
        loop = asyncio.get_running_loop()
        pipeline = loop.run_in_executor(
            None, functools.partial(self._store_and_recognize, key, upload)
        )
        try:
            extracted_text = await asyncio.wait_for(pipeline, timeout=timeout)
        except asyncio.TimeoutError:
            status = ResultStatus.FAILED
            error = f"OCR processing timed out after {timeout:.0f}s"
            logger.error(f"Таймаут обработки {key}: {timeout:.0f}s")
        except AppError as e:
            status = ResultStatus.FAILED
            error = e.message
            logger.warning(f"Ошибка обработки {key}: [{e.error}] {e.message}")
        except Exception as e:
            status = ResultStatus.FAILED
            error = str(e) or e.__class__.__name__
            logger.exception(f"Непредвиденная ошибка обработки {key}: {e}")

        processing_time = int((time.perf_counter() - total_start) * 1000)

        record = await run_in_threadpool(
            self.results.create,
            user_id=auth.user_id,
            original_image=key,
            extracted_text=extracted_text if status == ResultStatus.SUCCESS else "",
            processing_time=processing_time,
            status=status,
            error=error,
        )

        logger.info("=" * 60)
        logger.info(f"ОБРАБОТКА ЗАВЕРШЕНА: {status.value}")
        logger.info(f"   Результат: {record.id}")
        logger.info(f"   Символов: {len(record.extracted_text)}")
        logger.info(f"   ИТОГО: {processing_time}ms")
        logger.info("=" * 60)

        return record

    def _store_and_recognize(self, key: str, upload: ImageUpload) -> str:
        """Шаги 2-4 пайплайна. Выполняется в потоке."""
        # 2. Запись в хранилище
        store_start = time.perf_counter()
        self.retry.call(self.storage.put, key, upload.data, upload.content_type)
        store_duration = int((time.perf_counter() - store_start) * 1000)
        logger.info(f"   Storage: {store_duration}ms")

        # 3-4. Распознавание; движок освобождается на выходе из with
        ocr_start = time.perf_counter()
        with self.engines.acquire() as engine:
            text = engine.recognize(upload.data)
        ocr_duration = int((time.perf_counter() - ocr_start) * 1000)
        logger.info(f"   OCR: {ocr_duration}ms, символов: {len(text)}")

        return text

    # -------------------------------------------------------------------------
    # Чтение и удаление
    # -------------------------------------------------------------------------

    def present(self, record: OcrResult) -> OcrResultResponse:
        """
        Формирует ответ с новой подписанной ссылкой на изображение.

        Ссылки не кешируются: у них ограниченный срок жизни.
        Если подписать ссылку не удалось (после повторов), результат
        всё равно отдаётся, с пустым image_url.
        """
        try:
            image_url = self.retry.call(
                self.storage.signed_url,
                record.original_image,
                self.config.signed_url_ttl_seconds,
            )
        except StorageError as e:
            logger.warning(f"Не удалось подписать ссылку на {record.original_image}: {e}")
            image_url = ""
        return OcrResultResponse(
            id=record.id,
            user_id=record.user_id,
            original_image=record.original_image,
            image_url=image_url,
            extracted_text=record.extracted_text or "",
            processing_time=record.processing_time,
            status=ResultStatus(record.status),
            error=record.error,
            created_at=record.created_at,
            updated_at=record.updated_at,
        )

    def list_results(self, auth: AuthContext) -> list[OcrResult]:
        """Результаты пользователя, новые первыми."""
        results = self.results.find_by_user(auth.user_id)
        logger.info(f"Результатов для {auth.user_id}: {len(results)}")
        return results

    def get_result(self, auth: AuthContext, result_id: str) -> OcrResult:
        """
        Результат по id с проверкой владельца.

        Raises:
            NotFoundError: результата нет
            ForbiddenError: результат принадлежит другому пользователю
        """
        record = self.results.find_by_id(result_id)
        if record is None:
            raise NotFoundError("Resource not found")
        if record.user_id != auth.user_id:
            logger.warning(
                f"Доступ к чужому результату: {result_id} (user_id={auth.user_id})"
            )
            raise ForbiddenError("You are not authorized to perform this action")
        return record

    def delete_result(self, auth: AuthContext, result_id: str) -> None:
        """
        Удаляет результат и (best-effort) изображение из хранилища.

        Ошибка удаления из хранилища логируется и не мешает удалению
        записи: запись в БД определяет, что видит пользователь.
        """
        record = self.get_result(auth, result_id)

        try:
            self.storage.delete(record.original_image)
        except StorageError as e:
            logger.warning(f"Не удалось удалить {record.original_image} из хранилища: {e}")

        self.results.delete(result_id)
