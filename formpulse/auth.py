import logging
from datetime import datetime, timedelta, timezone
from typing import Optional

from jose import JWTError, jwt
from passlib.context import CryptContext

from formpulse.errors import AuthError, DuplicateUser
from formpulse.models import User
from formpulse.store import FormStore

logger = logging.getLogger(__name__)

ALGORITHM = "HS256"

pwd_context = CryptContext(schemes=["pbkdf2_sha256"], deprecated="auto")


def hash_password(password: str) -> str:
    return pwd_context.hash(password)


def verify_password(password: str, password_hash: str) -> bool:
    if not password_hash:
        return False
    return pwd_context.verify(password, password_hash)


class TokenIssuer:
    """Issues and verifies HS256 bearer tokens whose subject is a user id."""

    def __init__(self, secret: str, expire_minutes: int = 60 * 24):
        self.secret = secret
        self.expire_minutes = expire_minutes

    def issue(self, user_id: str, expires_delta: Optional[timedelta] = None) -> str:
        expire = datetime.now(timezone.utc) + (expires_delta or timedelta(minutes=self.expire_minutes))
        return jwt.encode({"sub": user_id, "exp": expire}, self.secret, algorithm=ALGORITHM)

    def verify(self, token: str) -> str:
        try:
            payload = jwt.decode(token, self.secret, algorithms=[ALGORITHM])
        except JWTError as exc:
            raise AuthError("invalid token") from exc
        user_id = payload.get("sub")
        if not user_id:
            raise AuthError("invalid token")
        return user_id


def register_user(store: FormStore, email: str, password: str, name: str = "") -> User:
    email = email.strip()
    if not email or not password:
        raise AuthError("email and password are required")
    if store.get_user_by_email(email) is not None:
        raise DuplicateUser("User already exists")
    user = User(email=email, name=name, password_hash=hash_password(password))
    store.insert_user(user)
    logger.info("Registered user %s", user.id)
    return user


def authenticate(store: FormStore, email: str, password: str) -> User:
    user = store.get_user_by_email(email.strip())
    if user is None or not verify_password(password, user.password_hash):
        raise AuthError("Invalid credentials")
    return user
