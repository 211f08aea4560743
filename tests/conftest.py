"""
Общие фикстуры тестов.

Окружение OCR_* задаётся до импорта приложения: настройки читаются
при импорте ocr_app.config. Каждый тест получает чистую схему SQLite,
хранилище в памяти и поддельный движок распознавания.
"""

import io
import os
import tempfile
import threading
import time

_TMP_DIR = tempfile.mkdtemp(prefix="ocr_app_tests_")

os.environ["OCR_JWT_SECRET"] = "test-secret-key-for-ocr-app-tests"
os.environ["OCR_DATABASE_URL"] = f"sqlite:///{_TMP_DIR}/test.db"
os.environ["OCR_STORAGE_DIR"] = f"{_TMP_DIR}/storage"
os.environ["OCR_STORAGE_BACKEND"] = "local"
os.environ["OCR_API_PREFIX"] = ""
os.environ["OCR_MAX_FILE_SIZE_MB"] = "10"
os.environ["OCR_RETRY_BASE_DELAY_SECONDS"] = "0"

import pytest  # noqa: E402
from fastapi.testclient import TestClient  # noqa: E402
from PIL import Image  # noqa: E402

from ocr_app.database import Base, SessionLocal, engine  # noqa: E402
from ocr_app.dependencies import (  # noqa: E402
    get_engine_provider,
    get_retry_policy,
    get_storage,
)
from ocr_app.exceptions import RecognitionError, StorageError  # noqa: E402
from ocr_app.main import app  # noqa: E402
from ocr_app.services.recognition import EngineProvider  # noqa: E402
from ocr_app.services.retry import RetryPolicy  # noqa: E402


# =============================================================================
# Тестовые двойники
# =============================================================================


class InMemoryStorage:
    """
    Хранилище в памяти.

    Attributes:
        objects: {key: (data, content_type)}
        put_failures: сколько ближайших put завершатся StorageError
        fail_delete: delete всегда завершается StorageError
        fail_sign: signed_url всегда завершается StorageError
    """

    def __init__(self):
        self.objects: dict[str, tuple[bytes, str]] = {}
        self.put_failures = 0
        self.put_calls = 0
        self.fail_delete = False
        self.fail_sign = False
        self.sign_calls = 0

    def put(self, key: str, data: bytes, content_type: str) -> None:
        self.put_calls += 1
        if self.put_failures > 0:
            self.put_failures -= 1
            raise StorageError("S3 is unavailable")
        self.objects[key] = (data, content_type)

    def get(self, key: str) -> bytes:
        if key not in self.objects:
            raise StorageError(f"No such key: {key}")
        return self.objects[key][0]

    def delete(self, key: str) -> None:
        if self.fail_delete:
            raise StorageError("delete failed")
        if key not in self.objects:
            raise StorageError(f"No such key: {key}")
        del self.objects[key]

    def signed_url(self, key: str, ttl: int) -> str:
        self.sign_calls += 1
        if self.fail_sign:
            raise StorageError("sign failed")
        return f"https://storage.test/{key}?expires={ttl}&sig={time.time_ns()}"

    def setup(self, cors_origins: list[str]) -> None:
        pass


class FakeEngine:
    def __init__(self, factory: "FakeEngineFactory"):
        self.factory = factory
        self.released = threading.Event()
        self.received: list[bytes] = []

    def recognize(self, image_bytes: bytes) -> str:
        self.received.append(image_bytes)
        if self.factory.delay:
            time.sleep(self.factory.delay)
        if self.factory.error is not None:
            raise self.factory.error
        return self.factory.text

    def release(self) -> None:
        self.released.set()


class FakeEngineFactory:
    """
    Фабрика поддельных движков: запоминает все созданные экземпляры.

    Attributes:
        text: что вернёт recognize
        error: исключение для recognize (если задано)
        delay: задержка recognize, сек
        init_failures: сколько ближайших созданий завершатся ошибкой
        init_error: исключение при создании
    """

    def __init__(self):
        self.text = "Hello OCR"
        self.error = None
        self.delay = 0.0
        self.init_failures = 0
        self.init_error: Exception = RecognitionError("engine init")
        self.engines: list[FakeEngine] = []

    def __call__(self) -> FakeEngine:
        if self.init_failures > 0:
            self.init_failures -= 1
            raise self.init_error
        engine = FakeEngine(self)
        self.engines.append(engine)
        return engine


def no_sleep(_seconds: float) -> None:
    pass


def make_image_bytes(fmt: str = "JPEG", size: tuple[int, int] = (64, 32)) -> bytes:
    buffer = io.BytesIO()
    Image.new("RGB", size, "white").save(buffer, format=fmt)
    return buffer.getvalue()


# =============================================================================
# Фикстуры
# =============================================================================


@pytest.fixture(autouse=True)
def reset_database():
    Base.metadata.drop_all(bind=engine)
    Base.metadata.create_all(bind=engine)
    yield


@pytest.fixture
def db_session():
    session = SessionLocal()
    try:
        yield session
    finally:
        session.close()


@pytest.fixture
def storage() -> InMemoryStorage:
    return InMemoryStorage()


@pytest.fixture
def engine_factory() -> FakeEngineFactory:
    return FakeEngineFactory()


@pytest.fixture
def retry_policy() -> RetryPolicy:
    return RetryPolicy(max_attempts=3, base_delay=0.01, sleep=no_sleep)


@pytest.fixture
def engine_provider(engine_factory, retry_policy) -> EngineProvider:
    return EngineProvider(factory=engine_factory, retry=retry_policy)


@pytest.fixture
def client(storage, engine_provider, retry_policy):
    app.dependency_overrides[get_storage] = lambda: storage
    app.dependency_overrides[get_engine_provider] = lambda: engine_provider
    app.dependency_overrides[get_retry_policy] = lambda: retry_policy
    with TestClient(app) as test_client:
        yield test_client
    app.dependency_overrides.clear()


@pytest.fixture
def jpeg_bytes() -> bytes:
    return make_image_bytes("JPEG")


@pytest.fixture
def png_bytes() -> bytes:
    return make_image_bytes("PNG")


def register_user(client, email="user@example.com", password="secret123", name="User"):
    response = client.post(
        "/auth/register",
        json={"email": email, "password": password, "name": name},
    )
    assert response.status_code == 201, response.text
    return response.json()


def login_headers(client, email="user@example.com", password="secret123") -> dict:
    response = client.post("/auth/login", json={"email": email, "password": password})
    assert response.status_code == 200, response.text
    return {"Authorization": f"Bearer {response.json()['token']}"}


@pytest.fixture
def auth_headers(client) -> dict:
    register_user(client)
    return login_headers(client)
