"""
Сервис токенов сессии.

Stateless JWT (HS256): валидность определяется только подписью и сроком.
Хранилища токенов и механизма отзыва нет.

Payload:
    sub   — id пользователя
    email — email пользователя
    iat   — время выпуска
    exp   — время истечения (iat + token_ttl_hours)
"""

import logging
from datetime import datetime, timedelta, timezone
from typing import Optional

import jwt

from ocr_app.config import settings
from ocr_app.exceptions import AuthenticationError
from ocr_app.schemas import AuthContext

logger = logging.getLogger(__name__)

INVALID_TOKEN_MESSAGE = "Invalid token"


class TokenService:
    """
    Выпуск и проверка подписанных токенов.

    Args:
        secret: ключ подписи
        algorithm: алгоритм подписи
        ttl: время жизни токена
    """

    def __init__(
        self,
        secret: str,
        algorithm: str = "HS256",
        ttl: timedelta = timedelta(hours=24),
    ):
        self.secret = secret
        self.algorithm = algorithm
        self.ttl = ttl

    @classmethod
    def from_settings(cls) -> "TokenService":
        return cls(
            secret=settings.jwt_secret,
            algorithm=settings.jwt_algorithm,
            ttl=timedelta(hours=settings.token_ttl_hours),
        )

    def issue(self, user_id: str, email: str, now: Optional[datetime] = None) -> str:
        """
        Выпускает токен для пользователя.

        Args:
            user_id: идентификатор пользователя
            email: email пользователя
            now: момент выпуска (по умолчанию — текущее время UTC)

        Returns:
            str: подписанный JWT
        """
        issued_at = now or datetime.now(timezone.utc)
        payload = {
            "sub": user_id,
            "email": email,
            "iat": issued_at,
            "exp": issued_at + self.ttl,
        }
        return jwt.encode(payload, self.secret, algorithm=self.algorithm)

    def verify(self, token: str) -> AuthContext:
        """
        Проверяет подпись и срок токена.

        Args:
            token: JWT из заголовка Authorization

        Returns:
            AuthContext: id и email пользователя

        Raises:
            AuthenticationError: подпись неверна, payload повреждён или срок истёк
        """
        try:
            payload = jwt.decode(
                token,
                self.secret,
                algorithms=[self.algorithm],
                options={"require": ["sub", "exp", "iat"]},
            )
        except jwt.ExpiredSignatureError:
            logger.info("Токен просрочен")
            raise AuthenticationError("Token has expired", "invalid_token")
        except jwt.InvalidTokenError as e:
            logger.info(f"Невалидный токен: {e}")
            raise AuthenticationError(INVALID_TOKEN_MESSAGE, "invalid_token")

        user_id = payload.get("sub")
        email = payload.get("email")
        if not isinstance(user_id, str) or not user_id or not isinstance(email, str):
            logger.info("Невалидный payload токена")
            raise AuthenticationError(INVALID_TOKEN_MESSAGE, "invalid_token")

        return AuthContext(user_id=user_id, email=email)
