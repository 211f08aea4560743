"""
OCR App — сервис распознавания текста на изображениях.

Объединяет:
    - Регистрацию и вход пользователей (Bearer JWT)
    - Загрузку изображений в объектное хранилище (S3 или локальная папка)
    - Распознавание текста через Tesseract
    - Историю результатов пользователя (SQLAlchemy)

Каждая загрузка даёт ровно одну запись результата — успешную или с ошибкой.
"""

from ocr_app.config import settings
from ocr_app.schemas import AuthContext, ImageUpload, OcrResultResponse, ResultStatus

__all__ = [
    "settings",
    "AuthContext",
    "ImageUpload",
    "OcrResultResponse",
    "ResultStatus",
]
