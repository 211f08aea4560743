"""
Схемы данных OCR App.

Включает:
    - Pydantic модели для API (регистрация, логин, результат OCR)
    - Внутренние dataclass'ы для передачи контекста между слоями
"""

import re
from dataclasses import dataclass
from datetime import datetime
from enum import Enum
from typing import Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator
from pydantic.alias_generators import to_camel

from ocr_app.config import settings

# Достаточная проверка формата email: local@domain.tld
EMAIL_PATTERN = re.compile(r"^[^@\s]+@[^@\s]+\.[^@\s]+$")


# =============================================================================
# Внутренние dataclass'ы
# =============================================================================


@dataclass(frozen=True)
class AuthContext:
    """
    Аутентифицированный пользователь запроса.

    Создаётся из Bearer токена и явно передаётся в каждый вызов сервисов.

    Attributes:
        user_id: идентификатор пользователя
        email: email пользователя
    """

    user_id: str
    email: str


@dataclass(frozen=True)
class ImageUpload:
    """
    Провалидированное загруженное изображение.

    Attributes:
        filename: исходное имя файла
        content_type: MIME тип (из allow-list)
        data: содержимое файла
    """

    filename: str
    content_type: str
    data: bytes

    @property
    def size_bytes(self) -> int:
        return len(self.data)


class ResultStatus(str, Enum):
    SUCCESS = "success"
    FAILED = "failed"


# =============================================================================
# Pydantic модели для API
# =============================================================================


def _normalize_email(value: str) -> str:
    value = value.strip().lower()
    if not EMAIL_PATTERN.match(value):
        raise ValueError("Please enter a valid email")
    return value


class RegisterRequest(BaseModel):
    """
    Запрос регистрации.

    Attributes:
        email: email (приводится к нижнему регистру)
        password: пароль (не короче password_min_length)
        name: отображаемое имя
    """

    email: str
    password: str
    name: str

    @field_validator("email")
    @classmethod
    def check_email(cls, value: str) -> str:
        return _normalize_email(value)

    @field_validator("password")
    @classmethod
    def check_password(cls, value: str) -> str:
        if len(value) < settings.password_min_length:
            raise ValueError(
                f"Password must be at least {settings.password_min_length} characters long"
            )
        return value

    @field_validator("name")
    @classmethod
    def check_name(cls, value: str) -> str:
        value = value.strip()
        if not value:
            raise ValueError("Name is required")
        return value


class LoginRequest(BaseModel):
    email: str
    password: str = Field(min_length=1)

    @field_validator("email")
    @classmethod
    def check_email(cls, value: str) -> str:
        return _normalize_email(value)


class UserResponse(BaseModel):
    id: str
    email: str
    name: str


class LoginResponse(BaseModel):
    token: str
    user: UserResponse


class OcrResultResponse(BaseModel):
    """
    Результат OCR для клиента.

    Сериализуется в camelCase (userId, extractedText, ...).

    Attributes:
        id: идентификатор результата
        user_id: владелец
        original_image: ключ изображения в хранилище
        image_url: свежая подписанная ссылка на изображение
        extracted_text: распознанный текст (может быть пустым)
        processing_time: время обработки в мс
        status: success | failed
        error: сообщение об ошибке (только при status=failed)
        created_at: время создания
        updated_at: время обновления
    """

    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)

    id: str
    user_id: str
    original_image: str
    image_url: str
    extracted_text: str = ""
    processing_time: int = Field(ge=0)
    status: ResultStatus
    error: Optional[str] = None
    created_at: datetime
    updated_at: datetime


class MessageResponse(BaseModel):
    success: bool = True
    message: str
