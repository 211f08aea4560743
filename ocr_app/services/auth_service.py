"""
Регистрация, вход и проверка Bearer токенов.
"""

import logging

from ocr_app.exceptions import AuthenticationError
from ocr_app.models import User
from ocr_app.schemas import AuthContext
from ocr_app.services.passwords import hash_password, verify_password
from ocr_app.services.tokens import TokenService
from ocr_app.services.user_store import UserStore

logger = logging.getLogger(__name__)

INVALID_CREDENTIALS_MESSAGE = "Invalid email or password"


class AuthService:
    """
    Сервис аутентификации.

    Args:
        users: хранилище пользователей
        tokens: сервис токенов
    """

    def __init__(self, users: UserStore, tokens: TokenService):
        self.users = users
        self.tokens = tokens

    def register(self, email: str, password: str, name: str) -> User:
        """
        Регистрирует пользователя.

        Raises:
            UserAlreadyExistsError: email уже занят
        """
        return self.users.create(
            email=email,
            password_hash=hash_password(password),
            name=name,
        )

    def login(self, email: str, password: str) -> tuple[User, str]:
        """
        Проверяет учётные данные и выпускает токен.

        Неизвестный email и неверный пароль дают одну и ту же ошибку,
        чтобы не раскрывать существование аккаунта.

        Returns:
            tuple: (User, token)

        Raises:
            AuthenticationError: неверные учётные данные
        """
        user = self.users.find_by_email(email)
        if user is None or not verify_password(password, user.password_hash):
            logger.info("Неудачная попытка входа")
            raise AuthenticationError(INVALID_CREDENTIALS_MESSAGE, "invalid_credentials")

        token = self.tokens.issue(user.id, user.email)
        logger.info(f"Вход выполнен: user_id={user.id}")
        return user, token

    def authenticate(self, token: str) -> AuthContext:
        """
        Строит AuthContext из токена.

        Raises:
            AuthenticationError: токен невалиден или пользователь удалён
        """
        auth = self.tokens.verify(token)
        if self.users.find_by_id(auth.user_id) is None:
            logger.info(f"Токен пользователя, которого нет в БД: {auth.user_id}")
            raise AuthenticationError("Invalid token", "invalid_token")
        return auth
