"""
FastAPI зависимости: сборка сервисов на запрос.

Хранилище и выдача движков — синглтоны процесса; в тестах подменяются
через app.dependency_overrides.
"""

from functools import lru_cache
from typing import Optional

from fastapi import Depends
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer
from sqlalchemy.orm import Session

from ocr_app.database import get_db
from ocr_app.exceptions import AuthenticationError
from ocr_app.schemas import AuthContext
from ocr_app.services.auth_service import AuthService
from ocr_app.services.ocr_processor import OcrProcessor
from ocr_app.services.recognition import EngineProvider
from ocr_app.services.result_store import ResultStore
from ocr_app.services.retry import RetryPolicy
from ocr_app.services.storage import ObjectStorage, create_storage
from ocr_app.services.tokens import TokenService
from ocr_app.services.user_store import UserStore

bearer_scheme = HTTPBearer(auto_error=False)


@lru_cache
def get_storage() -> ObjectStorage:
    return create_storage()


@lru_cache
def get_engine_provider() -> EngineProvider:
    return EngineProvider()


def get_retry_policy() -> RetryPolicy:
    return RetryPolicy.from_settings()


def get_auth_service(db: Session = Depends(get_db)) -> AuthService:
    return AuthService(users=UserStore(db), tokens=TokenService.from_settings())


def get_auth_context(
    credentials: Optional[HTTPAuthorizationCredentials] = Depends(bearer_scheme),
    auth_service: AuthService = Depends(get_auth_service),
) -> AuthContext:
    """
    Аутентифицированный пользователь из заголовка Authorization: Bearer <token>.

    Raises:
        AuthenticationError: заголовка нет или токен невалиден
    """
    if credentials is None or credentials.scheme.lower() != "bearer":
        raise AuthenticationError("Unauthorized access", "unauthorized")
    return auth_service.authenticate(credentials.credentials)


def get_ocr_processor(
    db: Session = Depends(get_db),
    storage: ObjectStorage = Depends(get_storage),
    engines: EngineProvider = Depends(get_engine_provider),
    retry: RetryPolicy = Depends(get_retry_policy),
) -> OcrProcessor:
    return OcrProcessor(
        results=ResultStore(db),
        storage=storage,
        engines=engines,
        retry=retry,
    )
