"""
Подготовка хранилища и БД перед первым запуском.

    - S3: создаёт бакет (если нет) и применяет CORS для фронтенда
    - local: создаёт папку хранилища
    - создаёт таблицы users и ocr_results

Запуск:
    ocr-app-setup-storage
или:
    python -m ocr_app.setup_storage
"""

import logging

from ocr_app.config import settings
from ocr_app.database import init_db
from ocr_app.services.storage import create_storage

logger = logging.getLogger(__name__)


def main() -> None:
    logging.basicConfig(
        level=logging.INFO,
        format="%(asctime)s [OCR-Setup] %(message)s",
        datefmt="%H:%M:%S",
    )

    storage = create_storage()
    storage.setup(settings.cors_origins)
    init_db()

    logger.info(f"Хранилище ({settings.storage_backend}) и БД готовы")


if __name__ == "__main__":
    main()
