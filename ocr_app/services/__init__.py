"""
Сервисы OCR App.

Модули:
    - ocr_processor: оркестрация store -> recognize -> persist, доступ к результатам
    - recognition: движок Tesseract и выдача движков на вызов
    - storage: объектное хранилище (S3 / локальная папка)
    - result_store: хранилище результатов OCR
    - user_store, passwords, tokens, auth_service: учётные записи и токены
    - retry: политика повторов временных ошибок
"""

from ocr_app.services.auth_service import AuthService
from ocr_app.services.ocr_processor import OcrProcessor, validate_upload
from ocr_app.services.recognition import EngineProvider, TesseractEngine
from ocr_app.services.result_store import ResultStore
from ocr_app.services.retry import RetryPolicy
from ocr_app.services.storage import create_storage
from ocr_app.services.tokens import TokenService
from ocr_app.services.user_store import UserStore

__all__ = [
    "AuthService",
    "EngineProvider",
    "OcrProcessor",
    "ResultStore",
    "RetryPolicy",
    "TesseractEngine",
    "TokenService",
    "UserStore",
    "create_storage",
    "validate_upload",
]
