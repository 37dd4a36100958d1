from __future__ import annotations

import json

import pytest

from strider.core.passwords import hash_password, verify_password


def test_hash_is_json_and_never_contains_password():
    cred = hash_password("secret1")
    blob = json.dumps(cred)
    assert "secret1" not in blob
    assert cred["kdf"]["name"] == "scrypt"


def test_verify_roundtrip_and_wrong_password():
    cred = hash_password("secret1")
    assert verify_password("secret1", cred) is True
    assert verify_password("secret2", cred) is False


def test_salts_differ_per_hash():
    assert hash_password("same")["salt"] != hash_password("same")["salt"]


def test_empty_password_rejected():
    with pytest.raises(ValueError):
        hash_password("")


def test_malformed_credential_fails_closed():
    assert verify_password("x", {}) is False
    assert verify_password("x", {"salt": "zz", "digest": "00"}) is False
    cred = hash_password("x")
    cred["kdf"] = {"name": "md5"}
    assert verify_password("x", cred) is False
