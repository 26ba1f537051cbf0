"""
Password hashing (bcrypt).

Moonfolio does not authenticate requests; users exist only as optional
portfolio owners. Passwords are still never stored in clear.
"""
import bcrypt
import structlog

logger = structlog.get_logger(__name__)

# Cost factor 12: ~250ms per hash on commodity hardware
BCRYPT_ROUNDS = 12

# bcrypt only looks at the first 72 bytes
_BCRYPT_MAX_BYTES = 72


def hash_password(password: str, rounds: int = BCRYPT_ROUNDS) -> str:
    """Return the bcrypt hash (salt included) of ``password``."""
    password_bytes = password.encode('utf-8')[:_BCRYPT_MAX_BYTES]
    return bcrypt.hashpw(password_bytes, bcrypt.gensalt(rounds=rounds)).decode('utf-8')


def verify_password(plain_password: str, hashed_password: str) -> bool:
    """Check a password against a stored hash; malformed hashes never match."""
    try:
        return bcrypt.checkpw(
            plain_password.encode('utf-8')[:_BCRYPT_MAX_BYTES],
            hashed_password.encode('utf-8'),
            )
    except ValueError as e:
        logger.warning("Password verification failed", error=str(e))
        return False
