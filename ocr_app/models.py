"""
ORM модели OCR App.

    - User: учётная запись (email уникален без учёта регистра)
    - OcrResult: одна попытка распознавания и её исход
"""

import uuid
from datetime import datetime, timezone

from sqlalchemy import Column, DateTime, ForeignKey, Index, Integer, String, Text

from ocr_app.database import Base


def _new_id() -> str:
    return str(uuid.uuid4())


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class User(Base):
    """
    Пользователь.

    Пароль хранится только в виде солёного хеша (passlib).
    Email хранится в нижнем регистре — уникальность без учёта регистра.
    """

    __tablename__ = "users"

    id = Column(String(36), primary_key=True, default=_new_id)
    email = Column(String(255), unique=True, index=True, nullable=False)
    password_hash = Column(String(256), nullable=False)
    name = Column(String(255), nullable=False)
    created_at = Column(DateTime(timezone=True), default=_utcnow, nullable=False)
    updated_at = Column(
        DateTime(timezone=True), default=_utcnow, onupdate=_utcnow, nullable=False
    )

    def __repr__(self) -> str:
        return f"<User {self.id}: {self.email}>"


class OcrResult(Base):
    """
    Результат распознавания одного загруженного изображения.

    Создаётся ровно один раз на каждую загрузку — в том числе при ошибке
    распознавания (status=failed, error заполнен).
    """

    __tablename__ = "ocr_results"
    __table_args__ = (Index("ix_ocr_results_user_created", "user_id", "created_at"),)

    id = Column(String(36), primary_key=True, default=_new_id)
    user_id = Column(String(36), ForeignKey("users.id"), nullable=False, index=True)
    # Ключ изображения в объектном хранилище
    original_image = Column(String(1024), nullable=False)
    extracted_text = Column(Text, nullable=False, default="")
    # Время обработки в мс
    processing_time = Column(Integer, nullable=False, default=0)
    status = Column(String(16), nullable=False)
    error = Column(Text, nullable=True)
    # Время ставится на стороне Python: микросекунды нужны для сортировки
    created_at = Column(DateTime(timezone=True), default=_utcnow, nullable=False)
    updated_at = Column(
        DateTime(timezone=True), default=_utcnow, onupdate=_utcnow, nullable=False
    )

    def __repr__(self) -> str:
        return f"<OcrResult {self.id}: {self.status}>"
