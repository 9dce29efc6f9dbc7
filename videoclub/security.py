"""
Password hashing helpers.

Hashes are stored as ``pbkdf2_sha256$<iterations>$<salt hex>$<digest hex>``.
"""

import hashlib
import hmac
import secrets

from videoclub.config import PASSWORD_ITERATIONS

ALGORITHM = "pbkdf2_sha256"


def hash_password(plain: str, iterations: int = PASSWORD_ITERATIONS) -> str:
    salt = secrets.token_bytes(16)
    digest = hashlib.pbkdf2_hmac("sha256", plain.encode("utf-8"), salt, iterations)
    return f"{ALGORITHM}${iterations}${salt.hex()}${digest.hex()}"


def verify_password(plain: str, hashed: str) -> bool:
    try:
        algorithm, iterations, salt_hex, digest_hex = hashed.split("$")
        salt = bytes.fromhex(salt_hex)
        rounds = int(iterations)
        if algorithm != ALGORITHM:
            return False
        candidate = hashlib.pbkdf2_hmac("sha256", plain.encode("utf-8"), salt, rounds)
    except ValueError:
        return False
    return hmac.compare_digest(candidate.hex(), digest_hex)
