# =============================================================================
# Session Tokens
# =============================================================================
#
# Providers keep the logged-in identity as a signed JWT in their session
# store, so `check_session()` is a cheap local decode:
#   - Token creation from an AuthContext
#   - Token validation back into an AuthContext
#   - Password hashing for the local credential store
#
# =============================================================================

from datetime import datetime, timedelta, timezone
import hashlib
import logging
import secrets

import jwt
from pydantic import BaseModel

from fieldauth.auth.context import AuthContext
from fieldauth.config import Settings, get_settings
from fieldauth.core.utils import generate_id, utc_now

logger = logging.getLogger(__name__)


# =============================================================================
# Models
# =============================================================================

class TokenPayload(BaseModel):
    """Validated session token claims."""
    sub: str  # user_id
    exp: datetime
    iat: datetime
    jti: str  # unique token ID
    claims: dict


# =============================================================================
# Password Hashing
# =============================================================================

def hash_password(password: str) -> str:
    """
    Hash a password using PBKDF2-SHA256.

    Returns: salt:hash format string
    """
    salt = secrets.token_hex(32)
    hash_bytes = hashlib.pbkdf2_hmac(
        'sha256',
        password.encode('utf-8'),
        salt.encode('utf-8'),
        iterations=100_000
    )
    return f"{salt}:{hash_bytes.hex()}"


def verify_password(password: str, password_hash: str) -> bool:
    """Verify a password against its hash."""
    try:
        salt, stored_hash = password_hash.split(':')
        hash_bytes = hashlib.pbkdf2_hmac(
            'sha256',
            password.encode('utf-8'),
            salt.encode('utf-8'),
            iterations=100_000
        )
        return secrets.compare_digest(hash_bytes.hex(), stored_hash)
    except (ValueError, AttributeError):
        return False


# =============================================================================
# Token Creation
# =============================================================================

def create_session_token(context: AuthContext, settings: Settings | None = None) -> str:
    """Create a signed session token for an authenticated context."""
    settings = settings or get_settings()
    now = utc_now()
    expire = now + timedelta(minutes=settings.jwt_session_expire_minutes)

    payload = {
        **context.to_claims(),
        "exp": expire,
        "iat": now,
        "jti": generate_id("tok"),
    }

    return jwt.encode(payload, settings.jwt_secret_key, algorithm=settings.jwt_algorithm)


# =============================================================================
# Token Validation
# =============================================================================

class TokenError(Exception):
    """Base exception for token errors."""
    pass


class TokenExpiredError(TokenError):
    """Token has expired."""
    pass


class TokenInvalidError(TokenError):
    """Token is invalid or malformed."""
    pass


def decode_session_token(token: str, settings: Settings | None = None) -> TokenPayload:
    """
    Decode and validate a session token.

    Raises:
        TokenExpiredError: Token has expired
        TokenInvalidError: Token is invalid
    """
    settings = settings or get_settings()
    try:
        payload = jwt.decode(
            token,
            settings.jwt_secret_key,
            algorithms=[settings.jwt_algorithm],
        )
    except jwt.ExpiredSignatureError:
        raise TokenExpiredError("Token has expired")
    except jwt.InvalidTokenError as e:
        raise TokenInvalidError(f"Invalid token: {e}")

    if not payload.get("sub"):
        raise TokenInvalidError("Token has no subject")

    return TokenPayload(
        sub=payload["sub"],
        exp=datetime.fromtimestamp(payload["exp"], tz=timezone.utc),
        iat=datetime.fromtimestamp(payload["iat"], tz=timezone.utc),
        jti=payload.get("jti", ""),
        claims=payload,
    )


def context_from_token(token: str, settings: Settings | None = None) -> AuthContext:
    """Decode a session token straight into an AuthContext."""
    return AuthContext.from_claims(decode_session_token(token, settings).claims)
