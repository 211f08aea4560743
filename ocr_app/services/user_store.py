"""
Хранилище учётных записей (таблица users).
"""

import logging
from typing import Optional

from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from ocr_app.exceptions import UserAlreadyExistsError
from ocr_app.models import User

logger = logging.getLogger(__name__)


class UserStore:
    """CRUD пользователей поверх сессии SQLAlchemy."""

    def __init__(self, db: Session):
        self.db = db

    def create(self, email: str, password_hash: str, name: str) -> User:
        """
        Создаёт пользователя.

        Raises:
            UserAlreadyExistsError: email уже занят (без учёта регистра)
        """
        email = email.strip().lower()
        if self.find_by_email(email) is not None:
            raise UserAlreadyExistsError("User already exists")

        user = User(email=email, password_hash=password_hash, name=name)
        self.db.add(user)
        try:
            self.db.commit()
        except IntegrityError:
            # Параллельная регистрация с тем же email
            self.db.rollback()
            raise UserAlreadyExistsError("User already exists")
        self.db.refresh(user)

        logger.info(f"Создан пользователь: id={user.id}")
        return user

    def find_by_email(self, email: str) -> Optional[User]:
        return (
            self.db.query(User)
            .filter(User.email == email.strip().lower())
            .first()
        )

    def find_by_id(self, user_id: str) -> Optional[User]:
        return self.db.get(User, user_id)
