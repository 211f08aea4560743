"""
Конфигурация OCR App.

Все значения читаются из .env файла (или переменных окружения).
Единый префикс: OCR_

Обязательный параметр без дефолта — OCR_JWT_SECRET (ключ подписи токенов).
Остальные параметры имеют дефолты для локального запуска.
"""

from typing import Literal, Optional

from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """
    Настройки OCR App.

    Читает переменные с префиксом OCR_ из .env файла.
    Объединяет все параметры: сервер, БД, авторизация, загрузка,
    хранилище, распознавание и политика повторов.
    """

    model_config = SettingsConfigDict(
        env_prefix="OCR_",
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
    )

    # --- Сервер ---
    host: str = "0.0.0.0"
    port: int = 8000
    # Префикс для всех маршрутов ("/api" для фронтенда)
    api_prefix: str = ""
    cors_origins: list[str] = ["*"]

    # --- База данных ---
    database_url: str = "sqlite:///./ocr_app.db"

    # --- Авторизация ---
    # Передаётся в заголовке: Authorization: Bearer <token>
    jwt_secret: str
    jwt_algorithm: str = "HS256"
    token_ttl_hours: int = 24
    password_min_length: int = 6

    # --- Загрузка: лимиты ---
    max_file_size_mb: int = 10
    allowed_content_types: list[str] = ["image/jpeg", "image/jpg", "image/png"]

    # --- Хранилище изображений ---
    storage_backend: Literal["local", "s3"] = "local"
    storage_dir: str = "./storage"
    # Базовый URL сервиса для подписанных ссылок локального хранилища
    public_base_url: str = "http://localhost:8000"
    signed_url_ttl_seconds: int = 3600
    s3_bucket: Optional[str] = None
    s3_region: Optional[str] = None
    # Для S3-совместимых хранилищ (MinIO и т.п.)
    s3_endpoint_url: Optional[str] = None
    aws_access_key_id: Optional[str] = None
    aws_secret_access_key: Optional[str] = None

    # --- OCR: Tesseract ---
    ocr_languages: list[str] = ["eng"]
    ocr_oem: int = 3
    ocr_psm: int = 3
    recognition_timeout_seconds: float = 120.0

    # --- Обработка: общий таймаут и повторы ---
    processing_timeout_seconds: float = 300.0
    retry_attempts: int = 3
    retry_base_delay_seconds: float = 0.5
    retry_backoff_factor: float = 2.0

    @property
    def max_file_size_bytes(self) -> int:
        return self.max_file_size_mb * 1024 * 1024


# Глобальный экземпляр настроек
settings = Settings()
