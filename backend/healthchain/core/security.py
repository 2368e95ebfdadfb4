"""
Security utilities for authentication and encryption.

Provides password hashing, JWT utilities, and symmetric encryption for
sensitive patient identifiers (national ID numbers).
"""

import base64
import hashlib
from datetime import datetime, timedelta, timezone
from typing import Any, Optional

import bcrypt as _bcrypt
from cryptography.fernet import Fernet, InvalidToken
from cryptography.hazmat.backends import default_backend
from cryptography.hazmat.primitives import hashes
from cryptography.hazmat.primitives.kdf.pbkdf2 import PBKDF2HMAC
from jose import JWTError, jwt

from .config import settings


# =============================================================================
# Password Hashing  (direct bcrypt)
# =============================================================================


def hash_password(password: str) -> str:
    """Hash a password using bcrypt."""
    return _bcrypt.hashpw(password.encode("utf-8"), _bcrypt.gensalt()).decode("utf-8")


def verify_password(plain_password: str, hashed_password: str) -> bool:
    """Verify a plain-text password against a bcrypt hash."""
    return _bcrypt.checkpw(plain_password.encode("utf-8"), hashed_password.encode("utf-8"))


# =============================================================================
# JWT Token Management
# =============================================================================

ALGORITHM = "HS256"


def create_access_token(
    data: dict[str, Any],
    expires_delta: Optional[timedelta] = None
) -> str:
    """
    Create a JWT access token.

    Args:
        data: Payload data to encode in token
        expires_delta: Optional custom expiration time

    Returns:
        Encoded JWT token string
    """
    to_encode = data.copy()
    expire = datetime.now(timezone.utc) + (
        expires_delta or timedelta(minutes=settings.access_token_expire_minutes)
    )
    to_encode.update({"exp": expire, "type": "access"})
    return jwt.encode(to_encode, settings.secret_key, algorithm=ALGORITHM)


def create_refresh_token(data: dict[str, Any]) -> str:
    """Create a JWT refresh token with longer expiration."""
    to_encode = data.copy()
    expire = datetime.now(timezone.utc) + timedelta(days=settings.refresh_token_expire_days)
    to_encode.update({"exp": expire, "type": "refresh"})
    return jwt.encode(to_encode, settings.secret_key, algorithm=ALGORITHM)


def decode_token(token: str) -> Optional[dict[str, Any]]:
    """
    Decode and verify a JWT token.

    Returns:
        Decoded payload dict or None if invalid or expired
    """
    try:
        return jwt.decode(token, settings.secret_key, algorithms=[ALGORITHM])
    except JWTError:
        return None


# =============================================================================
# Field Encryption
# =============================================================================

def _get_fernet_key() -> bytes:
    """
    Derive a Fernet-compatible key from the configured encryption key.

    PBKDF2 with a static salt gives the same key on every process.
    """
    kdf = PBKDF2HMAC(
        algorithm=hashes.SHA256(),
        length=32,
        salt=b"healthchain_emr_field_salt",
        iterations=100000,
        backend=default_backend()
    )
    return base64.urlsafe_b64encode(kdf.derive(settings.encryption_key.encode()))


_fernet = Fernet(_get_fernet_key())


def encrypt_field(plaintext: str) -> bytes:
    """
    Encrypt a sensitive value before it is stored.

    Example:
        patient.national_id_encrypted = encrypt_field("1103700012345")
    """
    if not plaintext:
        return b""
    return _fernet.encrypt(plaintext.encode("utf-8"))


def decrypt_field(ciphertext: bytes) -> str:
    """
    Decrypt a value produced by ``encrypt_field``.

    Raises:
        ValueError: If the ciphertext is invalid or was produced with another key
    """
    if not ciphertext:
        return ""
    try:
        return _fernet.decrypt(ciphertext).decode("utf-8")
    except InvalidToken as e:
        raise ValueError("Failed to decrypt field") from e


# =============================================================================
# Hashing Utilities
# =============================================================================

def hash_identifier(value: str) -> str:
    """
    Deterministic keyed hash used to look up encrypted identifiers.

    Fernet ciphertexts differ on every call, so uniqueness checks compare
    this hash instead.
    """
    normalized = value.strip().replace("-", "").replace(" ", "")
    salted = f"healthchain_id_{normalized}_{settings.secret_key[:16]}"
    return hashlib.sha256(salted.encode()).hexdigest()


def hash_ip_address(ip_address: str) -> str:
    """
    Hash an IP address for privacy-preserving storage.

    Returns:
        Hashed IP address (64 character hex string)
    """
    if not ip_address:
        return ""
    salted = f"healthchain_ip_{ip_address}_{settings.secret_key[:16]}"
    return hashlib.sha256(salted.encode()).hexdigest()


def mask_identifier(value: str, visible: int = 4) -> str:
    """Mask all but the last ``visible`` characters of an identifier."""
    if not value:
        return ""
    if len(value) <= visible:
        return "*" * len(value)
    return "*" * (len(value) - visible) + value[-visible:]


# =============================================================================
# Input Sanitization
# =============================================================================

def sanitize_string(value: str, max_length: int = 1000) -> str:
    """Truncate, strip null bytes and surrounding whitespace."""
    if not value:
        return ""
    return value[:max_length].replace("\x00", "").strip()
