"""
Хеширование паролей.

pbkdf2_sha256 из passlib: солёный односторонний хеш,
не требует внешнего бэкенда bcrypt.
"""

from passlib.context import CryptContext

pwd_context = CryptContext(
    schemes=["pbkdf2_sha256"],
    deprecated="auto",
)


def hash_password(password: str) -> str:
    return pwd_context.hash(password)


def verify_password(plain_password: str, hashed: str) -> bool:
    return pwd_context.verify(plain_password, hashed)
