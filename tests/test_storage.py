# Tests for the SQLite reference storage
#
# Coverage:
#   - Credential CRUD with paired audit entries
#   - Rollback when the audit append fails, settings included
#   - SQL filtering (LIKE escaping, Unicode case folding, json_each tags, ordering)
#   - Settings and master hash upserts
#   - Audit ordering and limits, persistence across reopen

from datetime import timedelta

import pytest

from conftest import MASTER_PASSWORD, fast_settings, make_vault
from secretplan.core.errors import NotFound, StorageFailure
from secretplan.core.models import (
    BreachState,
    Credential,
    CredentialFilter,
    utc_now,
)
from secretplan.core.storage import SqliteRepository


def _credential(site="example.com", username="alice", **kwargs):
    return Credential(site=site, username=username, secret_enc='{"nonce":"","ciphertext":""}', **kwargs)


def _audit_actions(repo):
    return [entry.action for entry in repo.audit_log.get()]


# ── Credentials ─────────────────────────────────────────────────────


class TestCredentialStore:
    def test_add_and_get(self, sqlite_repo):
        expires = utc_now() + timedelta(days=30)
        credential = _credential(tags=["work", "email"], strength=70, expires_at=expires)
        sqlite_repo.credentials.add(credential)

        loaded = sqlite_repo.credentials.get(credential.uuid)
        assert loaded == credential
        assert loaded.tags == ["work", "email"]
        assert loaded.expires_at == expires

    def test_add_writes_one_audit_entry(self, sqlite_repo):
        credential = _credential()
        sqlite_repo.credentials.add(credential)

        entries = sqlite_repo.audit_log.get()
        assert len(entries) == 1
        assert entries[0].action == "Added credential for example.com"
        assert entries[0].item_uuid == credential.uuid

    def test_get_missing(self, sqlite_repo):
        with pytest.raises(NotFound) as exc_info:
            sqlite_repo.credentials.get("missing")
        assert exc_info.value.uuid == "missing"

    def test_exists(self, sqlite_repo):
        credential = _credential()
        assert sqlite_repo.credentials.exists(credential.uuid) is False
        sqlite_repo.credentials.add(credential)
        assert sqlite_repo.credentials.exists(credential.uuid) is True

    def test_update(self, sqlite_repo):
        credential = _credential()
        sqlite_repo.credentials.add(credential)

        credential.site = "example.net"
        credential.strength = 90
        sqlite_repo.credentials.update(credential)

        loaded = sqlite_repo.credentials.get(credential.uuid)
        assert loaded.site == "example.net"
        assert loaded.strength == 90
        assert _audit_actions(sqlite_repo)[0] == "Updated credential for example.net"

    def test_update_missing_writes_no_audit(self, sqlite_repo):
        with pytest.raises(NotFound):
            sqlite_repo.credentials.update(_credential())
        assert sqlite_repo.audit_log.get() == []

    def test_delete_returns_site(self, sqlite_repo):
        credential = _credential(site="mail.example.com")
        sqlite_repo.credentials.add(credential)

        assert sqlite_repo.credentials.delete(credential.uuid) == "mail.example.com"
        assert sqlite_repo.credentials.exists(credential.uuid) is False
        assert _audit_actions(sqlite_repo)[0] == "Deleted credential for mail.example.com"

    def test_delete_missing_writes_no_audit(self, sqlite_repo):
        with pytest.raises(NotFound):
            sqlite_repo.credentials.delete("missing")
        assert sqlite_repo.audit_log.get() == []

    @pytest.mark.parametrize(
        "state, action",
        [
            (BreachState.SAFE, "Marked credential as safe"),
            (BreachState.COMPROMISED, "Marked credential as compromised"),
            (BreachState.UNKNOWN, "Reset credential breach state to unknown"),
        ],
    )
    def test_update_breach_state(self, sqlite_repo, state, action):
        credential = _credential()
        sqlite_repo.credentials.add(credential)

        sqlite_repo.credentials.update_breach_state(credential.uuid, state)

        assert sqlite_repo.credentials.get(credential.uuid).breach_state == state
        latest = sqlite_repo.audit_log.get(1)[0]
        assert latest.action == action
        assert latest.item_uuid == credential.uuid

    def test_update_breach_state_missing(self, sqlite_repo):
        with pytest.raises(NotFound):
            sqlite_repo.credentials.update_breach_state("missing", BreachState.SAFE)
        assert sqlite_repo.audit_log.get() == []


class TestAtomicity:
    def test_failed_audit_rolls_back_insert(self, sqlite_repo):
        sqlite_repo._conn.execute(
            "CREATE TRIGGER fail_audit BEFORE INSERT ON audit_log "
            "BEGIN SELECT RAISE(ABORT, 'audit unavailable'); END"
        )
        credential = _credential()

        with pytest.raises(StorageFailure):
            sqlite_repo.credentials.add(credential)

        assert sqlite_repo.credentials.exists(credential.uuid) is False

    def test_failed_audit_rolls_back_delete(self, sqlite_repo):
        credential = _credential()
        sqlite_repo.credentials.add(credential)
        sqlite_repo._conn.execute(
            "CREATE TRIGGER fail_audit BEFORE INSERT ON audit_log "
            "BEGIN SELECT RAISE(ABORT, 'audit unavailable'); END"
        )

        with pytest.raises(StorageFailure):
            sqlite_repo.credentials.delete(credential.uuid)

        assert sqlite_repo.credentials.exists(credential.uuid) is True

    def test_failed_audit_rolls_back_settings(self, sqlite_repo):
        sqlite_repo.settings.update_settings(b"n" * 12, b"first")
        sqlite_repo._conn.execute(
            "CREATE TRIGGER fail_audit BEFORE INSERT ON audit_log "
            "BEGIN SELECT RAISE(ABORT, 'audit unavailable'); END"
        )

        with pytest.raises(StorageFailure):
            sqlite_repo.settings.update_settings(b"m" * 12, b"second")

        assert sqlite_repo.settings.get_encrypted_settings() == (b"n" * 12, b"first")

    def test_failed_settings_save_keeps_kdf_parameters(self, sqlite_repo):
        vault = make_vault(sqlite_repo)
        vault.unlock(MASTER_PASSWORD)
        before = vault.crypto.settings
        sqlite_repo._conn.execute(
            "CREATE TRIGGER fail_audit BEFORE INSERT ON audit_log "
            "BEGIN SELECT RAISE(ABORT, 'audit unavailable'); END"
        )

        with pytest.raises(StorageFailure):
            vault.save_settings(fast_settings(argon2_memory_kb=16384, argon2_iterations=2))

        assert sqlite_repo.settings.get_encrypted_settings() is None
        assert vault.crypto.settings == before

    def test_duplicate_uuid_is_storage_failure(self, sqlite_repo):
        credential = _credential()
        sqlite_repo.credentials.add(credential)
        with pytest.raises(StorageFailure):
            sqlite_repo.credentials.add(credential)
        assert len(sqlite_repo.audit_log.get()) == 1


# ── Filtering ───────────────────────────────────────────────────────


class TestFiltering:
    @pytest.fixture
    def populated(self, sqlite_repo):
        for site, username, tags, strength, state in [
            ("example.org", "bob", ["work", "finance"], 85, BreachState.SAFE),
            ("example.com", "alice", ["personal", "email"], 40, BreachState.UNKNOWN),
            ("secure-site.com", "Carol", ["work", "admin"], 100, BreachState.COMPROMISED),
            ("100%_sure.net", "dave", [], 10, BreachState.UNKNOWN),
            ("example.com", "aaron", ["personal"], 55, BreachState.UNKNOWN),
        ]:
            sqlite_repo.credentials.add(
                _credential(site, username, tags=tags, strength=strength, breach_state=state)
            )
        return sqlite_repo

    def _list(self, repo, **kwargs):
        return repo.credentials.list(CredentialFilter(**kwargs))

    def test_ordered_by_site_then_username(self, populated):
        pairs = [(c.site, c.username) for c in populated.credentials.list()]
        assert pairs == [
            ("100%_sure.net", "dave"),
            ("example.com", "aaron"),
            ("example.com", "alice"),
            ("example.org", "bob"),
            ("secure-site.com", "Carol"),
        ]

    def test_search_site_or_username(self, populated):
        assert len(self._list(populated, search_term="example")) == 3
        assert [c.site for c in self._list(populated, search_term="carol")] == ["secure-site.com"]

    def test_search_is_case_insensitive(self, populated):
        assert len(self._list(populated, search_term="EXAMPLE.ORG")) == 1

    def test_search_ignores_non_ascii_case(self, populated):
        populated.credentials.add(_credential("École.fr", "Željko"))
        assert [c.site for c in self._list(populated, search_term="école")] == ["École.fr"]
        assert [c.username for c in self._list(populated, search_term="ŽELJ")] == ["Željko"]

    def test_search_escapes_wildcards(self, populated):
        assert [c.site for c in self._list(populated, search_term="%_")] == ["100%_sure.net"]
        assert self._list(populated, search_term="_x") == []

    def test_tag_exact_membership(self, populated):
        assert len(self._list(populated, tag="work")) == 2
        assert self._list(populated, tag="wor") == []

    def test_min_strength_inclusive(self, populated):
        assert [c.username for c in self._list(populated, min_strength=85)] == ["bob", "Carol"]
        assert self._list(populated, tag="work", min_strength=101) == []

    def test_breach_state_exact(self, populated):
        found = self._list(populated, breach_state=BreachState.COMPROMISED)
        assert [c.site for c in found] == ["secure-site.com"]

    def test_combined(self, populated):
        found = self._list(populated, search_term="example", tag="personal", min_strength=50)
        assert [c.username for c in found] == ["aaron"]


# ── Settings & audit ────────────────────────────────────────────────


class TestSettingsStore:
    def test_settings_absent(self, sqlite_repo):
        assert sqlite_repo.settings.get_encrypted_settings() is None

    def test_settings_upsert(self, sqlite_repo):
        sqlite_repo.settings.save_encrypted_settings(b"n" * 12, b"first")
        sqlite_repo.settings.save_encrypted_settings(b"m" * 12, b"second")
        assert sqlite_repo.settings.get_encrypted_settings() == (b"m" * 12, b"second")

    def test_master_hash_upsert(self, sqlite_repo):
        assert sqlite_repo.settings.get_master_password_hash() is None
        sqlite_repo.settings.save_master_password_hash("$argon2id$first")
        sqlite_repo.settings.save_master_password_hash("$argon2id$second")
        assert sqlite_repo.settings.get_master_password_hash() == "$argon2id$second"

    def test_update_settings_writes_audit_entry(self, sqlite_repo):
        sqlite_repo.settings.update_settings(b"n" * 12, b"blob")

        assert sqlite_repo.settings.get_encrypted_settings() == (b"n" * 12, b"blob")
        entries = sqlite_repo.audit_log.get()
        assert [e.action for e in entries] == ["Updated app settings"]
        assert entries[0].item_uuid is None

    def test_settings_and_hash_are_independent(self, sqlite_repo):
        sqlite_repo.settings.save_master_password_hash("$argon2id$hash")
        sqlite_repo.settings.save_encrypted_settings(b"n" * 12, b"blob")
        assert sqlite_repo.settings.get_master_password_hash() == "$argon2id$hash"


class TestAuditLog:
    def test_newest_first_with_increasing_ids(self, sqlite_repo):
        ids = [sqlite_repo.audit_log.add(f"action {i}") for i in range(3)]
        assert ids == sorted(ids)
        entries = sqlite_repo.audit_log.get()
        assert [e.action for e in entries] == ["action 2", "action 1", "action 0"]
        assert entries[0].item_uuid is None

    def test_limit(self, sqlite_repo):
        for i in range(5):
            sqlite_repo.audit_log.add(f"action {i}")
        assert [e.action for e in sqlite_repo.audit_log.get(2)] == ["action 4", "action 3"]
        assert sqlite_repo.audit_log.get(0) == []

    def test_default_limit(self, sqlite_repo):
        for i in range(105):
            sqlite_repo.audit_log.add(f"action {i}")
        assert len(sqlite_repo.audit_log.get()) == 100


# ── Lifecycle ───────────────────────────────────────────────────────


class TestLifecycle:
    def test_persists_across_reopen(self, tmp_path):
        path = tmp_path / "nested" / "vault.db"
        credential = _credential(tags=["work"])
        with SqliteRepository(path) as repo:
            repo.credentials.add(credential)
            repo.settings.save_master_password_hash("$argon2id$hash")

        with SqliteRepository(path) as repo:
            assert repo.credentials.get(credential.uuid) == credential
            assert repo.settings.get_master_password_hash() == "$argon2id$hash"
            assert len(repo.audit_log.get()) == 1

    def test_closed_repository_fails(self, tmp_path):
        repo = SqliteRepository(tmp_path / "vault.db")
        repo.close()
        with pytest.raises(StorageFailure):
            repo.credentials.list()
        repo.close()

    def test_in_memory_database(self):
        with SqliteRepository(":memory:") as repo:
            repo.credentials.add(_credential())
            assert len(repo.credentials.list()) == 1
