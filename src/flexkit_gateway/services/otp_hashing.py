"""One-time code generation and salted hashing."""

import hashlib
import hmac
import secrets

OTP_LENGTH = 6
_OTP_MIN = 10 ** (OTP_LENGTH - 1)
_OTP_SPAN = 9 * _OTP_MIN


def generate_code() -> str:
    """Return a uniformly random 6-digit code in 100000–999999."""
    return str(secrets.randbelow(_OTP_SPAN) + _OTP_MIN)


def generate_salt() -> str:
    return secrets.token_hex(16)


def hash_code(code: str, salt: str, secret: str) -> str:
    """HMAC-SHA256 of ``salt:code`` keyed with the server secret."""
    message = f"{salt}:{code}".encode()
    return hmac.new(secret.encode(), message, hashlib.sha256).hexdigest()


def verify_code(code: str, salt: str, expected_hash: str, secret: str) -> bool:
    """Constant-time comparison of *code* against a stored hash."""
    return hmac.compare_digest(hash_code(code, salt, secret), expected_hash)
