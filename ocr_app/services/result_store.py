"""
Хранилище результатов OCR (таблица ocr_results).

Проверку владельца выполняет OcrProcessor, не хранилище.
"""

import logging
from typing import Optional

from sqlalchemy.orm import Session

from ocr_app.exceptions import ResultNotFoundError
from ocr_app.models import OcrResult
from ocr_app.schemas import ResultStatus

logger = logging.getLogger(__name__)


class ResultStore:
    """CRUD результатов OCR поверх сессии SQLAlchemy."""

    def __init__(self, db: Session):
        self.db = db

    def create(
        self,
        user_id: str,
        original_image: str,
        extracted_text: str,
        processing_time: int,
        status: ResultStatus,
        error: Optional[str] = None,
    ) -> OcrResult:
        """
        Сохраняет результат. id и время создания назначаются здесь.

        Args:
            user_id: владелец результата
            original_image: ключ изображения в хранилище
            extracted_text: распознанный текст (может быть пустым)
            processing_time: время обработки в мс
            status: success | failed
            error: сообщение об ошибке (для failed)

        Returns:
            OcrResult: сохранённая запись
        """
        record = OcrResult(
            user_id=user_id,
            original_image=original_image,
            extracted_text=extracted_text,
            processing_time=max(0, int(processing_time)),
            status=ResultStatus(status).value,
            error=error,
        )
        self.db.add(record)
        self.db.commit()
        self.db.refresh(record)

        logger.info(
            f"Сохранён результат: id={record.id}, user_id={user_id}, "
            f"status={record.status}"
        )
        return record

    def find_by_user(self, user_id: str) -> list[OcrResult]:
        """Результаты пользователя, новые первыми. Пустой список, если их нет."""
        results = (
            self.db.query(OcrResult)
            .filter(OcrResult.user_id == user_id)
            .order_by(OcrResult.created_at.desc())
            .all()
        )
        logger.debug(f"Найдено результатов: {len(results)} (user_id={user_id})")
        return results

    def find_by_id(self, result_id: str) -> Optional[OcrResult]:
        return self.db.get(OcrResult, result_id)

    def delete(self, result_id: str) -> None:
        """
        Удаляет результат.

        Raises:
            ResultNotFoundError: записи с таким id нет
        """
        record = self.find_by_id(result_id)
        if record is None:
            raise ResultNotFoundError(f"Result {result_id} not found")

        self.db.delete(record)
        self.db.commit()
        logger.info(f"Удалён результат: id={result_id}")
