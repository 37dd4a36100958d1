from __future__ import annotations

import json

import pytest

from strider.core.errors import DuplicateEmailError, IdentityNotFoundError, InvalidCredentialsError
from strider.core.identity.local_store import LOCAL_TOKEN_PREFIX, LocalIdentityStore
from strider.core.identity.models import IdentityRecord


def _rec(email: str = "a@x.com", **kw) -> IdentityRecord:
    return IdentityRecord(email=email, first_name=kw.get("first_name", "Ann"), last_name=kw.get("last_name", "Lee"), **({"id": kw["id"]} if "id" in kw else {}))


def test_add_and_lookup_is_case_insensitive(identity_store):
    rec = identity_store.add_user(_rec("Ann@X.com"), "secret1")
    assert identity_store.get_user("ann@x.com").id == rec.id
    assert identity_store.verify_password("ANN@x.com", "secret1") is True
    assert identity_store.verify_password("ann@x.com", "nope") is False


def test_duplicate_email_rejected_and_first_record_untouched(identity_store):
    first = identity_store.add_user(_rec("a@x.com"), "secret1")
    with pytest.raises(DuplicateEmailError):
        identity_store.add_user(_rec("A@x.com", first_name="Other"), "secret2")
    assert identity_store.get_user("a@x.com") == first
    assert identity_store.verify_password("a@x.com", "secret1") is True


def test_unknown_email_is_not_found(identity_store):
    with pytest.raises(IdentityNotFoundError):
        identity_store.get_user("ghost@x.com")
    with pytest.raises(IdentityNotFoundError):
        identity_store.verify_password("ghost@x.com", "pw")


def test_password_is_never_written_to_disk(identity_store, data_paths):
    identity_store.add_user(_rec(), "super-secret-pw")
    with open(data_paths.identities_file, "r", encoding="utf-8") as f:
        raw = f.read()
    assert "super-secret-pw" not in raw
    assert json.loads(raw)["store_version"] == 1


def test_lookup_miss_reloads_from_durable_storage(data_paths):
    a = LocalIdentityStore(paths=data_paths.identities_record)
    b = LocalIdentityStore(paths=data_paths.identities_record)
    rec = a.add_user(_rec("late@x.com"), "pw1")
    # b was built before the write; the miss triggers a reload
    assert b.get_user("late@x.com").id == rec.id


def test_reload_discards_memory_only_rows(identity_store):
    identity_store.add_user(_rec("keep@x.com"), "pw1")
    identity_store._users["ghost@x.com"] = identity_store._users["keep@x.com"].model_copy()
    assert identity_store.reload_from_durable_storage() == 1
    assert [r.email for r in identity_store.list_all()] == ["keep@x.com"]


def test_remove_user_and_remove_all(identity_store):
    identity_store.add_user(_rec("a@x.com"), "pw1")
    identity_store.add_user(_rec("b@x.com"), "pw2")
    assert identity_store.remove_user("A@x.com") is True
    assert identity_store.remove_user("a@x.com") is False
    assert [r.email for r in identity_store.list_all()] == ["b@x.com"]
    assert identity_store.remove_all() == 1
    assert identity_store.list_all() == []


def test_remove_user_purges_backups(identity_store, data_paths):
    import os

    identity_store.add_user(_rec("a@x.com"), "pw1")
    identity_store.add_user(_rec("b@x.com"), "pw2")
    identity_store.remove_user("a@x.com")
    backups = [f for f in os.listdir(data_paths.backups_dir) if f.startswith("identities.json.")]
    assert backups == []


def test_offline_token_roundtrip_and_revoke(identity_store):
    rec = identity_store.add_user(_rec(), "pw1")
    token = identity_store.issue_token(rec)
    assert token.startswith(LOCAL_TOKEN_PREFIX)
    assert identity_store.validate_token(token).id == rec.id
    identity_store.revoke_token(rec.email)
    with pytest.raises(InvalidCredentialsError):
        identity_store.validate_token(token)


def test_remote_token_is_never_valid_locally(identity_store):
    with pytest.raises(InvalidCredentialsError):
        identity_store.validate_token("remote-abc")


def test_remember_remote_identity_keeps_remote_id(identity_store):
    remote = _rec("r@x.com", id="remote-id-1")
    identity_store.remember_remote_identity(remote, "pw1")
    assert identity_store.get_user("r@x.com").id == "remote-id-1"
    # refreshed profile and credential for the same id
    identity_store.remember_remote_identity(_rec("r@x.com", id="remote-id-1", first_name="New"), "pw2")
    assert identity_store.get_user("r@x.com").first_name == "New"
    assert identity_store.verify_password("r@x.com", "pw2") is True


def test_remember_remote_identity_never_overwrites_other_id(identity_store):
    local = identity_store.add_user(_rec("c@x.com"), "pw1")
    kept = identity_store.remember_remote_identity(_rec("c@x.com", id="someone-else"), "pw9")
    assert kept.id == local.id
    assert identity_store.get_user("c@x.com").id == local.id
    assert identity_store.verify_password("c@x.com", "pw1") is True


def test_stale_instance_does_not_resurrect_removed_identity(data_paths):
    a = LocalIdentityStore(paths=data_paths.identities_record)
    b = LocalIdentityStore(paths=data_paths.identities_record)
    a.add_user(_rec("victim@x.com"), "pw1")
    assert b.get_user("victim@x.com").email == "victim@x.com"
    assert a.remove_user("victim@x.com") is True
    b.add_user(_rec("other@x.com"), "pw2")
    fresh = LocalIdentityStore(paths=data_paths.identities_record)
    assert [r.email for r in fresh.list_all()] == ["other@x.com"]


def test_stale_instance_does_not_undo_remove_all(data_paths):
    a = LocalIdentityStore(paths=data_paths.identities_record)
    b = LocalIdentityStore(paths=data_paths.identities_record)
    rec = a.add_user(_rec("gone@x.com"), "pw1")
    b.get_user("gone@x.com")
    a.remove_all()
    with pytest.raises(IdentityNotFoundError):
        b.issue_token(rec)
    b.revoke_token("gone@x.com")
    assert LocalIdentityStore(paths=data_paths.identities_record).list_all() == []


def test_issue_token_can_reinstate_previous_token(identity_store):
    rec = identity_store.add_user(_rec(), "pw1")
    first = identity_store.issue_token(rec)
    identity_store.issue_token(rec)
    with pytest.raises(InvalidCredentialsError):
        identity_store.validate_token(first)
    assert identity_store.issue_token(rec, first) == first
    assert identity_store.validate_token(first).id == rec.id
    with pytest.raises(ValueError):
        identity_store.issue_token(rec, "remote-abc")
