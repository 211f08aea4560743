"""
Исключения OCR App.

Каждое исключение несёт HTTP статус и машинный код ошибки.
API отдаёт их в том же формате, что и HTTPException:
    {"detail": {"error": "<код>", "message": "<текст>"}}

Ошибки обработки изображения (хранилище, Tesseract, таймаут) внутри
OcrProcessor.process_image не пробрасываются наружу — они превращаются
в результат со status=failed.
"""


class AppError(Exception):
    """
    Базовое исключение приложения.

    Attributes:
        status_code: HTTP статус ответа
        error: машинный код ошибки
        message: сообщение для пользователя
    """

    status_code = 500
    error = "server_error"

    def __init__(self, message: str, error: str = None):
        super().__init__(message)
        self.message = message
        if error is not None:
            self.error = error

    def to_detail(self) -> dict:
        return {"error": self.error, "message": self.message}


# --- 400: валидация ---


class UploadValidationError(AppError):
    """Загруженный файл отклонён до любой обработки."""

    status_code = 400
    error = "invalid_file"


class UserAlreadyExistsError(AppError):
    status_code = 400
    error = "user_exists"


# --- 401 / 403 / 404 ---


class AuthenticationError(AppError):
    """Нет токена, токен невалиден/просрочен или неверные учётные данные."""

    status_code = 401
    error = "unauthorized"


class ForbiddenError(AppError):
    status_code = 403
    error = "forbidden"


class NotFoundError(AppError):
    status_code = 404
    error = "not_found"


class ResultNotFoundError(NotFoundError):
    pass


# --- Инфраструктура и распознавание ---


class StorageError(AppError):
    """Ошибка объектного хранилища (временная, повторяемая)."""

    status_code = 500
    error = "storage_error"


class EngineInitError(AppError):
    """Не удалось поднять Tesseract или загрузить языковые данные (временная)."""

    error = "engine_init_error"


class RecognitionError(AppError):
    """Tesseract не смог распознать изображение."""

    error = "recognition_error"


class RecognitionTimeoutError(RecognitionError):
    error = "recognition_timeout"
