"""Authentication and role checks for bookshop."""

import logging
import uuid
from dataclasses import dataclass
from datetime import datetime, timedelta, timezone
from typing import Any

from jose import JWTError, jwt
from passlib.context import CryptContext

from . import config
from .errors import (
    AuthenticationError,
    DuplicateError,
    InvalidArgumentError,
    PermissionDeniedError,
    UserNotFoundError,
)
from .models import Role, User
from .store import Store

logger = logging.getLogger(__name__)

pwd_context = CryptContext(schemes=["pbkdf2_sha256"], deprecated="auto")


@dataclass(frozen=True)
class Identity:
    """The authenticated caller, as carried by an access token."""

    user_id: int
    username: str
    role: Role

    @property
    def is_admin(self) -> bool:
        return self.role == Role.ADMIN


def authorize(identity: Identity | None, required_role: Role) -> bool:
    """Return True if ``identity`` holds ``required_role``. Admins hold every role."""
    if identity is None:
        return False
    return identity.role == required_role or identity.role == Role.ADMIN


def require_role(identity: Identity | None, required_role: Role) -> Identity:
    """
    Guard a privileged operation.

    Raises:
        AuthenticationError: If there is no identity.
        PermissionDeniedError: If the identity lacks the role.
    """
    if identity is None:
        raise AuthenticationError()
    if not authorize(identity, required_role):
        raise PermissionDeniedError(required_role.value)
    return identity


def hash_password(password: str) -> str:
    return pwd_context.hash(password)


def verify_password(plain_password: str, hashed_password: str) -> bool:
    return pwd_context.verify(plain_password, hashed_password)


def create_access_token(user: User, expires_delta: timedelta | None = None) -> str:
    """Issue a signed token carrying the user's id, name and role."""
    expire = datetime.now(timezone.utc) + (
        expires_delta or timedelta(minutes=config.TOKEN_EXPIRE_MINUTES)
    )
    claims = {
        "sub": str(user.id),
        "name": user.username,
        "role": user.role.value,
        "jti": str(uuid.uuid4()),
        "exp": expire,
    }
    return jwt.encode(claims, config.JWT_SECRET, algorithm=config.JWT_ALGORITHM)


def decode_access_token(token: str) -> dict[str, Any]:
    """
    Verify a token and return its claims.

    Raises:
        AuthenticationError: If the token is malformed, forged or expired.
    """
    try:
        return jwt.decode(token, config.JWT_SECRET, algorithms=[config.JWT_ALGORITHM])
    except JWTError:
        raise AuthenticationError("Invalid or expired token")


def identity_from_token(token: str) -> Identity:
    claims = decode_access_token(token)
    try:
        return Identity(
            user_id=int(claims["sub"]),
            username=claims.get("name", ""),
            role=Role(claims.get("role", Role.USER.value)),
        )
    except (KeyError, ValueError):
        raise AuthenticationError("Invalid token")


def token_expiration(token: str) -> datetime | None:
    """Read the expiry of a token without failing on bad input."""
    try:
        claims = jwt.get_unverified_claims(token)
    except JWTError:
        return None
    exp = claims.get("exp")
    if exp is None:
        return None
    return datetime.fromtimestamp(exp, tz=timezone.utc)


class UserService:
    """Registers users and checks credentials."""

    def __init__(self, store: Store):
        self.store = store

    def get_user(self, user_id: int) -> User:
        user = self.store.users.get(user_id)
        if user is None:
            raise UserNotFoundError(user_id)
        return user

    def register(
        self,
        username: str,
        password: str,
        email: str | None = None,
        first_name: str | None = None,
        last_name: str | None = None,
        phone_number: str | None = None,
    ) -> User:
        """
        Create a regular user account.

        Raises:
            InvalidArgumentError: If username or password is too short.
            DuplicateError: If the username is taken.
        """
        if not username or len(username.strip()) < 3:
            raise InvalidArgumentError("Username must be at least 3 characters long.")
        if not password or len(password) < 6:
            raise InvalidArgumentError("Password must be at least 6 characters long.")

        with self.store.lock():
            if self.store.users.find(lambda u: u.username == username):
                raise DuplicateError("Username", username)
            user = self.store.users.insert(User(
                id=0,
                username=username,
                password_hash=hash_password(password),
                role=Role.USER,
                email=email,
                first_name=first_name,
                last_name=last_name,
                phone_number=phone_number,
            ))

        logger.info("Registered user %s (%d)", user.username, user.id)
        return user

    def login(self, username: str, password: str) -> tuple[User, str]:
        """
        Check credentials and issue an access token.

        Raises:
            InvalidArgumentError: If either field is blank.
            AuthenticationError: If the credentials don't match.
        """
        if not username or not username.strip() or not password:
            raise InvalidArgumentError("Username and password are required.")

        user = self.store.users.find(lambda u: u.username == username)
        if user is None or not verify_password(password, user.password_hash):
            logger.warning("Failed login for %s", username)
            raise AuthenticationError("Invalid username or password.")

        return user, create_access_token(user)
