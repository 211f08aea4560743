"""
Подключение к базе данных.

SQLAlchemy engine и фабрика сессий по OCR_DATABASE_URL.
Таблицы: users, ocr_results (см. ocr_app.models).
"""

from sqlalchemy import create_engine
from sqlalchemy.orm import declarative_base, sessionmaker

from ocr_app.config import settings

# SQLite используется из потоков threadpool: снимаем проверку потока
connect_args = {}
if settings.database_url.startswith("sqlite"):
    connect_args = {"check_same_thread": False}

engine = create_engine(settings.database_url, connect_args=connect_args)

SessionLocal = sessionmaker(autocommit=False, autoflush=False, bind=engine)

Base = declarative_base()


def get_db():
    """
    FastAPI зависимость: сессия БД на время запроса.

    Сессия закрывается после ответа в любом случае.
    """
    db = SessionLocal()
    try:
        yield db
    finally:
        db.close()


def init_db() -> None:
    """Создаёт таблицы, если их ещё нет."""
    # Импорт регистрирует модели в Base.metadata
    from ocr_app import models  # noqa: F401

    Base.metadata.create_all(bind=engine)
