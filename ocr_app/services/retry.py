"""
Политика повторов для временных ошибок.

Единая обёртка для всех внешних вызовов: запись в хранилище,
подпись ссылок, создание движка Tesseract.

Задержка перед попыткой N (N >= 2):
    base_delay * backoff_factor ** (N - 2)
"""

import logging
import time
from typing import Callable, Optional, TypeVar

from ocr_app.config import settings
from ocr_app.exceptions import EngineInitError, StorageError

logger = logging.getLogger(__name__)

T = TypeVar("T")

# Ошибки, которые имеет смысл повторять
TRANSIENT_ERRORS: tuple[type[BaseException], ...] = (StorageError, EngineInitError)


class RetryPolicy:
    """
    Ограниченные повторы с экспоненциальной задержкой.

    Args:
        max_attempts: максимум попыток (включая первую)
        base_delay: задержка перед второй попыткой, сек
        backoff_factor: множитель задержки
        retry_on: классы повторяемых ошибок
        sleep: функция ожидания (подменяется в тестах)
    """

    def __init__(
        self,
        max_attempts: int = 3,
        base_delay: float = 0.5,
        backoff_factor: float = 2.0,
        retry_on: tuple[type[BaseException], ...] = TRANSIENT_ERRORS,
        sleep: Optional[Callable[[float], None]] = None,
    ):
        if max_attempts < 1:
            raise ValueError("max_attempts must be >= 1")
        self.max_attempts = max_attempts
        self.base_delay = base_delay
        self.backoff_factor = backoff_factor
        self.retry_on = retry_on
        self.sleep = sleep or time.sleep

    @classmethod
    def from_settings(cls) -> "RetryPolicy":
        return cls(
            max_attempts=settings.retry_attempts,
            base_delay=settings.retry_base_delay_seconds,
            backoff_factor=settings.retry_backoff_factor,
        )

    def delay_for(self, attempt: int) -> float:
        """Задержка после неудачной попытки attempt (нумерация с 1)."""
        return self.base_delay * (self.backoff_factor ** (attempt - 1))

    def call(self, func: Callable[..., T], *args, **kwargs) -> T:
        """
        Вызывает func с повторами.

        Неповторяемые ошибки пробрасываются сразу, последняя
        повторяемая — после исчерпания попыток.
        """
        name = getattr(func, "__qualname__", repr(func))

        for attempt in range(1, self.max_attempts + 1):
            try:
                return func(*args, **kwargs)
            except self.retry_on as e:
                if attempt >= self.max_attempts:
                    logger.warning(
                        f"{name}: попытки исчерпаны ({attempt}/{self.max_attempts}): {e}"
                    )
                    raise
                delay = self.delay_for(attempt)
                logger.warning(
                    f"{name}: попытка {attempt}/{self.max_attempts} не удалась: {e}. "
                    f"Повтор через {delay:.2f}s"
                )
                self.sleep(delay)

        # Недостижимо: цикл либо возвращает, либо пробрасывает
        raise RuntimeError("retry loop exited without result")
