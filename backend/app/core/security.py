"""
Security utilities - password hashing, JWT tokens

P2-6: Uses timezone-aware datetime (datetime.now(timezone.utc))
P2-8: JTI (JWT ID) on every token

Access and refresh tokens share the signing key and differ only by their
"type" claim and TTL. parse_token() checks signature and expiry only;
callers decide which type they accept.
"""
import logging
import uuid
from dataclasses import dataclass
from datetime import datetime, timedelta, timezone

import bcrypt
from jose import JWTError, jwt

from app.core.exceptions import CredentialHashError, InfrastructureError, InvalidTokenError

logger = logging.getLogger(__name__)

TOKEN_TYPE_ACCESS = "access"
TOKEN_TYPE_REFRESH = "refresh"


def verify_password(plain_password: str, hashed_password: str) -> bool:
    """Verify a password against its hash. Malformed hashes simply fail."""
    if not plain_password or not hashed_password:
        return False
    try:
        return bcrypt.checkpw(
            plain_password.encode("utf-8"),
            hashed_password.encode("utf-8")
        )
    except (ValueError, TypeError):
        return False


def get_password_hash(password: str) -> str:
    """Generate a salted bcrypt hash"""
    try:
        return bcrypt.hashpw(
            password.encode("utf-8"),
            bcrypt.gensalt()
        ).decode("utf-8")
    except (ValueError, TypeError) as e:
        logger.error(f"Password hashing failed: {type(e).__name__}: {e}")
        raise CredentialHashError(details={"reason": str(e)}) from e


@dataclass
class TokenClaims:
    account_id: int
    role: str
    token_type: str
    expires_at: datetime
    jti: str


@dataclass
class TokenPair:
    access_token: str
    refresh_token: str
    expires_at: int  # unix seconds of the access token expiry


class TokenIssuer:
    """Signs and parses identity tokens with the process-wide secret."""

    def __init__(self, secret_key: str, algorithm: str = "HS256"):
        self.secret_key = secret_key
        self.algorithm = algorithm

    def issue_token(
        self,
        account_id: int,
        role: str,
        ttl: timedelta,
        token_type: str = TOKEN_TYPE_ACCESS,
    ) -> str:
        now = datetime.now(timezone.utc)
        to_encode = {
            # sub is always a string (RFC 7519)
            "sub": str(account_id),
            "role": role,
            "type": token_type,
            "jti": str(uuid.uuid4()),
            "iat": now,
            "exp": now + ttl,
        }
        try:
            return jwt.encode(to_encode, self.secret_key, algorithm=self.algorithm)
        except JWTError as e:
            logger.error(f"Token signing failed: {e}")
            raise InfrastructureError("Failed to issue token", details={"reason": str(e)}) from e

    def issue_pair(
        self,
        account_id: int,
        role: str,
        access_ttl: timedelta,
        refresh_ttl: timedelta,
    ) -> TokenPair:
        access = self.issue_token(account_id, role, access_ttl, TOKEN_TYPE_ACCESS)
        refresh = self.issue_token(account_id, role, refresh_ttl, TOKEN_TYPE_REFRESH)
        expires_at = int((datetime.now(timezone.utc) + access_ttl).timestamp())
        return TokenPair(access_token=access, refresh_token=refresh, expires_at=expires_at)

    def parse_token(self, token: str) -> TokenClaims:
        """Verify signature and expiry. Raises InvalidTokenError on any failure."""
        try:
            payload = jwt.decode(
                token,
                self.secret_key,
                algorithms=[self.algorithm],
            )
            return TokenClaims(
                account_id=int(payload["sub"]),
                role=str(payload.get("role", "")),
                token_type=str(payload.get("type", "")),
                expires_at=datetime.fromtimestamp(int(payload["exp"]), tz=timezone.utc),
                jti=str(payload.get("jti", "")),
            )
        except (JWTError, KeyError, ValueError, TypeError) as e:
            raise InvalidTokenError() from e
