from __future__ import annotations

import secrets
from typing import Any, Dict

from cryptography.hazmat.primitives.kdf.scrypt import Scrypt

SCRYPT_N = 2**14
SCRYPT_R = 8
SCRYPT_P = 1


def _scrypt_hash(password: str, salt: bytes, n: int = SCRYPT_N, r: int = SCRYPT_R, p: int = SCRYPT_P) -> bytes:
    kdf = Scrypt(salt=salt, length=32, n=n, r=r, p=p)
    return kdf.derive(password.encode("utf-8"))


def hash_password(password: str) -> Dict[str, Any]:
    """
    Returns a JSON-serializable credential; the password itself is never stored.
    """
    if not isinstance(password, str) or not password:
        raise ValueError("password required")
    salt = secrets.token_bytes(16)
    digest = _scrypt_hash(password, salt)
    return {"salt": salt.hex(), "digest": digest.hex(), "kdf": {"name": "scrypt", "n": SCRYPT_N, "r": SCRYPT_R, "p": SCRYPT_P}}


def verify_password(password: str, credential: Dict[str, Any]) -> bool:
    if not credential or not isinstance(password, str):
        return False
    try:
        salt = bytes.fromhex(str(credential["salt"]))
        expected = bytes.fromhex(str(credential["digest"]))
    except (KeyError, ValueError):
        return False
    kdf = credential.get("kdf") or {}
    if str(kdf.get("name", "scrypt")) != "scrypt":
        return False
    digest = _scrypt_hash(password, salt, n=int(kdf.get("n", SCRYPT_N)), r=int(kdf.get("r", SCRYPT_R)), p=int(kdf.get("p", SCRYPT_P)))
    return secrets.compare_digest(digest, expected)
