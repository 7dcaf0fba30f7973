"""
Admin authentication service - email/password sign-in with database sessions.

Admin users, credential accounts and sessions live in the auth database.
The session cookie carries the session token plus an HMAC-SHA256 signature
keyed with BETTER_AUTH_SECRET, so tampered cookies are rejected before any
database lookup.

Every call opens its own short auth session and returns the connection to
the pool before the caller continues; the read batches of the same request
draw from that pool too when both databases are one.
"""

import base64
import hashlib
import hmac
import secrets
import unicodedata
from dataclasses import dataclass
from datetime import UTC, datetime, timedelta
from uuid import uuid4

from argon2 import PasswordHasher
from argon2.exceptions import InvalidHashError, VerificationError, VerifyMismatchError
from sqlalchemy import delete, select
from structlog import get_logger

from app.db.models import AdminAccount, AdminSession, AdminUser
from app.db.session import Database
from app.exceptions import AuthenticationError

logger = get_logger(__name__)

CREDENTIAL_PROVIDER = "credential"
ADMIN_ROLE = "admin"

# Better Auth credential hashes: "<hex salt>:<hex scrypt key>"
SCRYPT_N = 16384
SCRYPT_R = 16
SCRYPT_P = 1
SCRYPT_KEY_LENGTH = 64


def scrypt_key(password: str, salt: str) -> bytes:
    """Better Auth key derivation: NFKC password, hex salt string used as-is."""
    return hashlib.scrypt(
        unicodedata.normalize("NFKC", password).encode(),
        salt=salt.encode(),
        n=SCRYPT_N,
        r=SCRYPT_R,
        p=SCRYPT_P,
        maxmem=128 * SCRYPT_N * SCRYPT_R * 2,
        dklen=SCRYPT_KEY_LENGTH,
    )


def verify_scrypt_hash(password_hash: str, password: str) -> bool:
    salt, _, key = password_hash.partition(":")
    try:
        expected = bytes.fromhex(key)
    except ValueError:
        return False
    if not salt or len(expected) != SCRYPT_KEY_LENGTH:
        return False
    return hmac.compare_digest(scrypt_key(password, salt), expected)


def _signature(token: str, secret: str) -> str:
    digest = hmac.new(secret.encode(), token.encode(), hashlib.sha256).digest()
    return base64.b64encode(digest).decode()


def sign_session_token(token: str, secret: str) -> str:
    """Cookie value for a session token: '<token>.<base64 signature>'."""
    return f"{token}.{_signature(token, secret)}"


def verify_session_cookie(value: str | None, secret: str) -> str | None:
    """Return the session token if the cookie signature is valid, else None."""
    if not value or "." not in value:
        return None
    token, _, signature = value.partition(".")
    if not token or not hmac.compare_digest(signature, _signature(token, secret)):
        return None
    return token


@dataclass(frozen=True)
class AuthenticatedAdmin:
    """A valid session together with its admin user."""

    session: AdminSession
    user: AdminUser


class AdminAuthService:
    """Sign-in, session lookup and sign-out against the auth database."""

    def __init__(
        self,
        database: Database,
        secret: str,
        session_expires_seconds: int = 60 * 60 * 24 * 7,
    ):
        self.database = database
        self.secret = secret
        self.session_expires_seconds = session_expires_seconds
        self.password_hasher = PasswordHasher()

    def _verify_password(self, password_hash: str | None, password: str) -> bool:
        """Accept argon2 hashes and Better Auth scrypt hashes."""
        if not password_hash:
            return False
        if not password_hash.startswith("$argon2"):
            return verify_scrypt_hash(password_hash, password)
        try:
            return self.password_hasher.verify(password_hash, password)
        except VerifyMismatchError:
            return False
        except (InvalidHashError, VerificationError) as e:
            logger.warning("admin_password_hash_unusable", error=str(e))
            return False

    async def sign_in(
        self,
        email: str,
        password: str,
        ip_address: str | None = None,
        user_agent: str | None = None,
    ) -> AuthenticatedAdmin:
        """
        Verify credentials and create a session row.

        Raises:
            AuthenticationError: unknown email, wrong password or non-admin role
        """
        email = email.strip().lower()

        async with self.database.session() as db:
            result = await db.execute(select(AdminUser).where(AdminUser.email == email))
            user = result.scalar_one_or_none()
            if user is None:
                logger.warning("admin_sign_in_unknown_email", email=email)
                raise AuthenticationError("Invalid email or password")

            result = await db.execute(
                select(AdminAccount).where(
                    AdminAccount.user_id == user.id,
                    AdminAccount.provider_id == CREDENTIAL_PROVIDER,
                )
            )
            account = result.scalar_one_or_none()
            if account is None or not self._verify_password(account.password, password):
                logger.warning("admin_sign_in_bad_password", email=email)
                raise AuthenticationError("Invalid email or password")

            if user.role != ADMIN_ROLE:
                logger.warning("admin_sign_in_insufficient_role", email=email, role=user.role)
                raise AuthenticationError("Admin role required")

            now = datetime.now(UTC)
            session = AdminSession(
                id=uuid4().hex,
                token=secrets.token_urlsafe(32),
                user_id=user.id,
                ip_address=ip_address,
                user_agent=user_agent,
                expires_at=now + timedelta(seconds=self.session_expires_seconds),
                created_at=now,
                updated_at=now,
            )
            db.add(session)
            await db.commit()

        logger.info("admin_sign_in_success", user_id=user.id, email=user.email)
        return AuthenticatedAdmin(session=session, user=user)

    def cookie_value(self, session: AdminSession) -> str:
        return sign_session_token(session.token, self.secret)

    async def get_session(self, cookie_value: str | None) -> AuthenticatedAdmin | None:
        """Resolve a cookie to a live admin session, or None."""
        token = verify_session_cookie(cookie_value, self.secret)
        if token is None:
            return None

        async with self.database.session() as db:
            result = await db.execute(
                select(AdminSession, AdminUser)
                .join(AdminUser, AdminSession.user_id == AdminUser.id)
                .where(AdminSession.token == token)
            )
            row = result.first()
        if row is None:
            return None

        session, user = row
        if session.expires_at <= datetime.now(UTC):
            logger.info("admin_session_expired", session_id=session.id)
            return None
        if user.role != ADMIN_ROLE:
            return None
        return AuthenticatedAdmin(session=session, user=user)

    async def sign_out(self, cookie_value: str | None) -> None:
        """Delete the session referenced by the cookie, if any."""
        token = verify_session_cookie(cookie_value, self.secret)
        if token is None:
            return
        async with self.database.session() as db:
            await db.execute(delete(AdminSession).where(AdminSession.token == token))
            await db.commit()
        logger.info("admin_sign_out")
