import os
import hashlib
import hmac

HASH_PREFIX = "pbkdf2_sha256"
HASH_ITERATIONS = 260000


def hash_password(password: str) -> str:
    """Returns a salted PBKDF2 hash of the password."""
    salt = os.urandom(16)
    dk = hashlib.pbkdf2_hmac("sha256", password.encode(), salt, HASH_ITERATIONS)
    return f"{HASH_PREFIX}${HASH_ITERATIONS}${salt.hex()}${dk.hex()}"


def is_password_hash(value: str) -> bool:
    return value.startswith(HASH_PREFIX + "$")


def verify_password(stored_hash: str, password: str) -> bool:
    """Checks a password against a hash produced by hash_password."""
    try:
        algo, iter_str, salt_hex, hash_hex = stored_hash.split("$")
        salt = bytes.fromhex(salt_hex)
        iterations = int(iter_str)
    except ValueError:
        return False
    if algo != HASH_PREFIX:
        return False
    new_hash = hashlib.pbkdf2_hmac("sha256", password.encode(errors="surrogateescape"), salt, iterations)
    return hmac.compare_digest(new_hash.hex(), hash_hex)


def check_credentials(config, username, password) -> bool:
    """
    True when username/password match the single configured account.
    The configured password may be stored in clear or as a PBKDF2 hash.
    """
    if username is None or not hmac.compare_digest(username.encode(errors="surrogateescape"), config.username.encode()):
        return False
    password = password or ""
    if is_password_hash(config.password):
        return verify_password(config.password, password)
    return hmac.compare_digest(password.encode(errors="surrogateescape"), config.password.encode())
