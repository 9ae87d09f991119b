"""
Password hashing utilities.

Passwords are stored as salted bcrypt hashes. Accounts created before
hashing was introduced may still carry a plaintext ``password`` field;
those are compared in constant time and upgraded on the next login.
"""
import hmac

import bcrypt

# bcrypt only looks at the first 72 bytes
MAX_PASSWORD_BYTES = 72


def get_password_hash(password: str) -> str:
    """Hash a password."""
    salt = bcrypt.gensalt()
    return bcrypt.hashpw(password.encode('utf-8')[:MAX_PASSWORD_BYTES], salt).decode('utf-8')


def verify_password(plain_password: str, hashed_password: str) -> bool:
    """Verify a password against a hash."""
    try:
        return bcrypt.checkpw(
            plain_password.encode('utf-8')[:MAX_PASSWORD_BYTES],
            hashed_password.encode('utf-8')
        )
    except ValueError:
        # Malformed stored hash
        return False


def verify_legacy_password(plain_password: str, stored_plaintext: str) -> bool:
    """Constant-time comparison for accounts that predate hashing."""
    return hmac.compare_digest(
        plain_password.encode('utf-8'),
        stored_plaintext.encode('utf-8')
    )
