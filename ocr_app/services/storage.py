"""
Объектное хранилище изображений.

Два бэкенда с одним интерфейсом ObjectStorage:
    - S3ObjectStorage: AWS S3 (или S3-совместимое хранилище) через boto3
    - LocalObjectStorage: файлы в локальной папке, отдаются через
      GET /storage/{key} по подписанной ссылке

Все ошибки бэкенда оборачиваются в StorageError (повторяемая ошибка).
"""

import logging
import mimetypes
import random
import time
from datetime import datetime, timedelta, timezone
from pathlib import Path
from typing import Optional, Protocol
from urllib.parse import quote

import boto3
import jwt
from botocore.config import Config as BotoConfig
from botocore.exceptions import BotoCoreError, ClientError
from werkzeug.utils import secure_filename

from ocr_app.config import Settings, settings
from ocr_app.exceptions import StorageError

logger = logging.getLogger(__name__)

# Коды head_bucket, при которых бакет нужно создать
BUCKET_MISSING_CODES = ("404", "NoSuchBucket", "NotFound")


class ObjectStorage(Protocol):
    """Интерфейс хранилища: put/get/delete по ключу + подписанная ссылка."""

    def put(self, key: str, data: bytes, content_type: str) -> None:
        ...

    def get(self, key: str) -> bytes:
        ...

    def delete(self, key: str) -> None:
        ...

    def signed_url(self, key: str, ttl: int) -> str:
        ...

    def setup(self, cors_origins: list[str]) -> None:
        ...


def build_storage_key(filename: str) -> str:
    """
    Генерирует уникальный ключ для загрузки.

    Формат: <epoch_ms>-<9 случайных цифр>-<безопасное имя файла>

    Args:
        filename: исходное имя файла от клиента

    Returns:
        str: ключ объекта
    """
    safe_name = secure_filename(filename or "") or "image"
    unique_suffix = f"{int(time.time() * 1000)}-{random.randint(0, 999_999_999):09d}"
    return f"{unique_suffix}-{safe_name}"


# =============================================================================
# S3
# =============================================================================


class S3ObjectStorage:
    """
    Хранилище в S3 бакете.

    Args:
        bucket: имя бакета
        client: boto3 S3 клиент
    """

    def __init__(self, bucket: str, client):
        self.bucket = bucket
        self.client = client

    @classmethod
    def from_settings(cls, config: Settings) -> "S3ObjectStorage":
        if not config.s3_bucket:
            raise ValueError("OCR_S3_BUCKET is required for storage_backend=s3")

        client = boto3.client(
            "s3",
            region_name=config.s3_region,
            endpoint_url=config.s3_endpoint_url,
            aws_access_key_id=config.aws_access_key_id,
            aws_secret_access_key=config.aws_secret_access_key,
            config=BotoConfig(
                signature_version="s3v4",
                connect_timeout=10,
                read_timeout=60,
                retries={"max_attempts": 1},
            ),
        )
        return cls(bucket=config.s3_bucket, client=client)

    def put(self, key: str, data: bytes, content_type: str) -> None:
        try:
            self.client.put_object(
                Bucket=self.bucket,
                Key=key,
                Body=data,
                ContentType=content_type,
            )
        except (BotoCoreError, ClientError) as e:
            raise StorageError(f"S3 upload failed for {key}: {e}")
        logger.info(f"S3: загружен {key} ({len(data)} байт)")

    def get(self, key: str) -> bytes:
        try:
            response = self.client.get_object(Bucket=self.bucket, Key=key)
            return response["Body"].read()
        except (BotoCoreError, ClientError) as e:
            raise StorageError(f"S3 download failed for {key}: {e}")

    def delete(self, key: str) -> None:
        try:
            self.client.delete_object(Bucket=self.bucket, Key=key)
        except (BotoCoreError, ClientError) as e:
            raise StorageError(f"S3 delete failed for {key}: {e}")
        logger.info(f"S3: удалён {key}")

    def signed_url(self, key: str, ttl: int) -> str:
        try:
            return self.client.generate_presigned_url(
                "get_object",
                Params={"Bucket": self.bucket, "Key": key},
                ExpiresIn=ttl,
            )
        except (BotoCoreError, ClientError) as e:
            raise StorageError(f"S3 URL signing failed for {key}: {e}")

    def setup(self, cors_origins: list[str]) -> None:
        """
        Создаёт бакет, если его нет, и настраивает CORS для фронтенда.
        """
        try:
            self.client.head_bucket(Bucket=self.bucket)
            logger.info(f"S3: бакет {self.bucket} существует")
        except ClientError as e:
            # 403 и прочее: бакет чужой или нет прав, создавать нечего
            code = e.response.get("Error", {}).get("Code")
            if code not in BUCKET_MISSING_CODES:
                raise StorageError(f"S3 bucket {self.bucket} is not accessible: {e}")
            params = {"Bucket": self.bucket}
            region = self.client.meta.region_name
            if region and region != "us-east-1":
                params["CreateBucketConfiguration"] = {"LocationConstraint": region}
            self.client.create_bucket(**params)
            logger.info(f"S3: создан бакет {self.bucket}")

        self.client.put_bucket_cors(
            Bucket=self.bucket,
            CORSConfiguration={
                "CORSRules": [
                    {
                        "AllowedOrigins": cors_origins,
                        "AllowedMethods": ["GET", "HEAD"],
                        "AllowedHeaders": ["*"],
                        "MaxAgeSeconds": 3000,
                    }
                ]
            },
        )
        logger.info(f"S3: CORS применён для {cors_origins}")


# =============================================================================
# Локальная папка
# =============================================================================


class LocalObjectStorage:
    """
    Хранилище в локальной папке.

    Подписанная ссылка — URL эндпоинта /storage/{key} с JWT в параметре
    signature (ключ объекта + срок действия).

    Args:
        root: корневая папка
        base_url: внешний URL, по которому доступен /storage
        secret: ключ подписи ссылок
        algorithm: алгоритм подписи
    """

    PURPOSE = "storage"

    def __init__(self, root: str, base_url: str, secret: str, algorithm: str = "HS256"):
        self.root = Path(root).resolve()
        self.base_url = base_url.rstrip("/")
        self.secret = secret
        self.algorithm = algorithm

    @classmethod
    def from_settings(cls, config: Settings) -> "LocalObjectStorage":
        return cls(
            root=config.storage_dir,
            base_url=f"{config.public_base_url.rstrip('/')}{config.api_prefix}",
            secret=config.jwt_secret,
            algorithm=config.jwt_algorithm,
        )

    def _path(self, key: str) -> Path:
        """Путь к объекту; ключ не должен выходить за пределы корня."""
        path = (self.root / key).resolve()
        if path == self.root or self.root not in path.parents:
            raise StorageError(f"Invalid storage key: {key}")
        return path

    def put(self, key: str, data: bytes, content_type: str) -> None:
        path = self._path(key)
        try:
            path.parent.mkdir(parents=True, exist_ok=True)
            path.write_bytes(data)
        except OSError as e:
            raise StorageError(f"Local upload failed for {key}: {e}")
        logger.info(f"Local: сохранён {key} ({len(data)} байт, {content_type})")

    def get(self, key: str) -> bytes:
        try:
            return self._path(key).read_bytes()
        except OSError as e:
            raise StorageError(f"Local read failed for {key}: {e}")

    def exists(self, key: str) -> bool:
        try:
            return self._path(key).is_file()
        except StorageError:
            return False

    def delete(self, key: str) -> None:
        try:
            self._path(key).unlink()
        except OSError as e:
            raise StorageError(f"Local delete failed for {key}: {e}")
        logger.info(f"Local: удалён {key}")

    def signed_url(self, key: str, ttl: int) -> str:
        self._path(key)
        expires = datetime.now(timezone.utc) + timedelta(seconds=ttl)
        signature = jwt.encode(
            {"key": key, "purpose": self.PURPOSE, "exp": expires},
            self.secret,
            algorithm=self.algorithm,
        )
        return f"{self.base_url}/storage/{quote(key)}?signature={signature}"

    def verify_signature(self, key: str, signature: str) -> bool:
        """Проверяет, что подпись выпущена для этого ключа и не истекла."""
        try:
            payload = jwt.decode(signature, self.secret, algorithms=[self.algorithm])
        except jwt.InvalidTokenError:
            return False
        return payload.get("purpose") == self.PURPOSE and payload.get("key") == key

    def content_type(self, key: str) -> str:
        guessed, _ = mimetypes.guess_type(key)
        return guessed or "application/octet-stream"

    def setup(self, cors_origins: list[str]) -> None:
        self.root.mkdir(parents=True, exist_ok=True)
        logger.info(f"Local: папка хранилища {self.root}")


def create_storage(config: Optional[Settings] = None) -> ObjectStorage:
    """Создаёт бакенд хранилища по OCR_STORAGE_BACKEND."""
    config = config or settings
    if config.storage_backend == "s3":
        return S3ObjectStorage.from_settings(config)
    return LocalObjectStorage.from_settings(config)
