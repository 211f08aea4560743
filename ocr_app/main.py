"""
OCR App — FastAPI приложение.

Пользователи регистрируются, входят, загружают изображение; сервер
сохраняет его в объектное хранилище, распознаёт текст через Tesseract
и сохраняет результат. Пользователь видит и удаляет свои результаты.

Эндпоинты (под OCR_API_PREFIX):
    POST   /auth/register        — регистрация
    POST   /auth/login           — вход, выдача Bearer токена
    POST   /ocr/process          — загрузка изображения и распознавание
    GET    /ocr/results          — результаты пользователя (новые первыми)
    GET    /ocr/results/{id}     — один результат
    DELETE /ocr/results/{id}     — удаление результата
    GET    /storage/{key}        — изображение по подписанной ссылке (local)
    GET    /health               — проверка работоспособности
    GET    /                     — описание сервиса

Запуск:
    uvicorn ocr_app.main:app --host 0.0.0.0 --port 8000
"""

import json
import logging
import os
import time
from contextlib import asynccontextmanager
from typing import Optional

from fastapi import APIRouter, Depends, FastAPI, File, Query, Request, UploadFile
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse, Response
from sqlalchemy import text
from sqlalchemy.orm import Session
from starlette.concurrency import run_in_threadpool

from ocr_app.config import settings
from ocr_app.database import get_db, init_db
from ocr_app.dependencies import (
    get_auth_context,
    get_auth_service,
    get_ocr_processor,
    get_storage,
)
from ocr_app.exceptions import AppError, ForbiddenError, NotFoundError
from ocr_app.schemas import (
    AuthContext,
    LoginRequest,
    LoginResponse,
    MessageResponse,
    OcrResultResponse,
    RegisterRequest,
    UserResponse,
)
from ocr_app.services.auth_service import AuthService
from ocr_app.services.ocr_processor import OcrProcessor, validate_upload
from ocr_app.services.storage import LocalObjectStorage, ObjectStorage

VERSION = "1.0.0"

# Настройка логгера
logging.basicConfig(
    level=logging.INFO,
    format="%(asctime)s [OCR-App] %(message)s",
    datefmt="%H:%M:%S",
)
logger = logging.getLogger(__name__)


class UnicodeJSONResponse(JSONResponse):
    """JSON ответ с нормальным отображением не-ASCII текста (без \\uXXXX экранирования)."""

    def render(self, content) -> bytes:
        return json.dumps(
            content,
            ensure_ascii=False,
            allow_nan=False,
            indent=None,
            separators=(",", ":"),
        ).encode("utf-8")


@asynccontextmanager
async def lifespan(app: FastAPI):
    init_db()
    logger.info(f"БД готова, хранилище: {settings.storage_backend}")
    yield


# FastAPI приложение
app = FastAPI(
    title="OCR App",
    description="Распознавание текста на изображениях с историей результатов",
    version=VERSION,
    default_response_class=UnicodeJSONResponse,
    lifespan=lifespan,
)

app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.cors_origins,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


@app.middleware("http")
async def log_requests(request: Request, call_next):
    start = time.perf_counter()
    response = await call_next(request)
    duration = int((time.perf_counter() - start) * 1000)
    logger.info(
        f"{request.method} {request.url.path} -> {response.status_code} ({duration}ms)"
    )
    return response


# =============================================================================
# Обработка ошибок
# =============================================================================


@app.exception_handler(AppError)
async def app_error_handler(request: Request, exc: AppError) -> JSONResponse:
    return UnicodeJSONResponse(
        status_code=exc.status_code,
        content={"detail": exc.to_detail()},
    )


@app.exception_handler(RequestValidationError)
async def validation_error_handler(
    request: Request, exc: RequestValidationError
) -> JSONResponse:
    errors = [
        {"field": ".".join(str(p) for p in err.get("loc", [])[1:]), "message": err.get("msg")}
        for err in exc.errors()
    ]
    return UnicodeJSONResponse(
        status_code=400,
        content={
            "detail": {
                "error": "validation_error",
                "message": "Validation error",
                "errors": errors,
            }
        },
    )


@app.exception_handler(Exception)
async def unhandled_error_handler(request: Request, exc: Exception) -> JSONResponse:
    logger.exception(f"Необработанная ошибка {request.method} {request.url.path}: {exc}")
    return UnicodeJSONResponse(
        status_code=500,
        content={"detail": {"error": "server_error", "message": "Internal server error"}},
    )


# =============================================================================
# Auth
# =============================================================================

router = APIRouter(prefix=settings.api_prefix)


@router.post("/auth/register", response_model=UserResponse, status_code=201)
def register(
    payload: RegisterRequest,
    auth_service: AuthService = Depends(get_auth_service),
) -> UserResponse:
    """
    Регистрирует пользователя.

    Returns:
        UserResponse: id, email, name

    Raises:
        UserAlreadyExistsError: email уже занят (400)
    """
    user = auth_service.register(payload.email, payload.password, payload.name)
    return UserResponse(id=user.id, email=user.email, name=user.name)


@router.post("/auth/login", response_model=LoginResponse)
def login(
    payload: LoginRequest,
    auth_service: AuthService = Depends(get_auth_service),
) -> LoginResponse:
    """
    Вход по email и паролю.

    Returns:
        LoginResponse: Bearer токен (24 часа) и данные пользователя

    Raises:
        AuthenticationError: неверный email или пароль (401)
    """
    user, token = auth_service.login(payload.email, payload.password)
    return LoginResponse(
        token=token,
        user=UserResponse(id=user.id, email=user.email, name=user.name),
    )


# =============================================================================
# OCR
# =============================================================================


@router.post("/ocr/process", response_model=OcrResultResponse)
async def process_image(
    image: Optional[UploadFile] = File(
        default=None, description="Изображение JPEG или PNG"
    ),
    auth: AuthContext = Depends(get_auth_context),
    processor: OcrProcessor = Depends(get_ocr_processor),
) -> OcrResultResponse:
    """
    Загружает изображение и распознаёт текст.

    Ошибки распознавания и хранилища не дают ошибку запроса: результат
    сохраняется со status=failed и возвращается с кодом 200.

    Args:
        image: файл (multipart/form-data, поле image)

    Returns:
        OcrResultResponse: сохранённый результат

    Raises:
        UploadValidationError: файл отсутствует, не того типа или слишком большой (400)
    """
    # 1. Читаем и валидируем файл до любой записи
    data = await image.read() if image is not None else None
    upload = validate_upload(
        filename=image.filename if image is not None else None,
        content_type=image.content_type if image is not None else None,
        data=data,
    )
    logger.info(f"Получен файл: {upload.filename}, {upload.size_bytes} байт")

    # 2. Хранилище -> Tesseract -> БД
    record = await processor.process_image(auth, upload)

    # 3. Ответ со свежей подписанной ссылкой
    return await run_in_threadpool(processor.present, record)


@router.get("/ocr/results", response_model=list[OcrResultResponse])
def list_results(
    auth: AuthContext = Depends(get_auth_context),
    processor: OcrProcessor = Depends(get_ocr_processor),
) -> list[OcrResultResponse]:
    return [processor.present(r) for r in processor.list_results(auth)]


@router.get("/ocr/results/{result_id}", response_model=OcrResultResponse)
def get_result(
    result_id: str,
    auth: AuthContext = Depends(get_auth_context),
    processor: OcrProcessor = Depends(get_ocr_processor),
) -> OcrResultResponse:
    return processor.present(processor.get_result(auth, result_id))


@router.delete("/ocr/results/{result_id}", response_model=MessageResponse)
def delete_result(
    result_id: str,
    auth: AuthContext = Depends(get_auth_context),
    processor: OcrProcessor = Depends(get_ocr_processor),
) -> MessageResponse:
    processor.delete_result(auth, result_id)
    return MessageResponse(message="Operation successful")


# =============================================================================
# Локальное хранилище: выдача изображений по подписанной ссылке
# =============================================================================


@router.get("/storage/{key:path}")
def download_object(
    key: str,
    signature: str = Query(...),
    storage: ObjectStorage = Depends(get_storage),
) -> Response:
    """
    Отдаёт изображение из локального хранилища.

    Raises:
        NotFoundError: бакенд не локальный или объекта нет (404)
        ForbiddenError: подпись неверна или истекла (403)
    """
    if not isinstance(storage, LocalObjectStorage):
        raise NotFoundError("Resource not found")
    if not storage.verify_signature(key, signature):
        raise ForbiddenError("Invalid or expired signature")
    if not storage.exists(key):
        raise NotFoundError("Resource not found")

    return Response(content=storage.get(key), media_type=storage.content_type(key))


# =============================================================================
# Служебные эндпоинты
# =============================================================================


@router.get("/health")
def health_check(db: Session = Depends(get_db)) -> dict:
    """
    Проверка работоспособности сервиса.

    Проверяет доступность БД и Tesseract, возвращает текущую конфигурацию.

    Returns:
        dict: статус сервиса и информация о системе
    """
    # Проверяем БД
    database_ok = True
    try:
        db.execute(text("SELECT 1"))
    except Exception as e:
        logger.warning(f"БД недоступна: {e}")
        database_ok = False

    # Проверяем доступность Tesseract
    tesseract_ok = False
    tesseract_version = "unknown"
    try:
        import pytesseract
        tesseract_version = str(pytesseract.get_tesseract_version())
        tesseract_ok = True
    except Exception as e:
        tesseract_version = f"error: {e}"

    return {
        "status": "ok" if database_ok and tesseract_ok else "degraded",
        "service": "ocr-app",
        "version": VERSION,
        "cpu_count": os.cpu_count(),
        "database": {"available": database_ok},
        "tesseract": {
            "available": tesseract_ok,
            "version": tesseract_version,
        },
        "config": {
            "storage_backend": settings.storage_backend,
            "max_file_size_mb": settings.max_file_size_mb,
            "ocr_languages": settings.ocr_languages,
            "processing_timeout_seconds": settings.processing_timeout_seconds,
        },
    }


@router.get("/")
def root() -> dict:
    prefix = settings.api_prefix
    return {
        "name": "OCR App API",
        "version": VERSION,
        "status": "running",
        "endpoints": {
            "auth": {
                "register": f"POST {prefix}/auth/register",
                "login": f"POST {prefix}/auth/login",
            },
            "ocr": {
                "process": f"POST {prefix}/ocr/process",
                "results": f"GET {prefix}/ocr/results",
                "resultById": f"GET {prefix}/ocr/results/:id",
                "deleteResult": f"DELETE {prefix}/ocr/results/:id",
            },
            "health": f"GET {prefix}/health",
        },
    }


app.include_router(router)


if __name__ == "__main__":
    import uvicorn

    logger.info(f"Запуск OCR App на {settings.host}:{settings.port}")

    uvicorn.run(
        app,
        host=settings.host,
        port=settings.port,
        log_level="info",
    )
