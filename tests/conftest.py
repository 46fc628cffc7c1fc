"""
Shared pytest fixtures for the SecretPlan test suite.

Argon2 runs with 8 MiB, one pass and one lane so each unlock costs a few
milliseconds. The in-memory repository below implements the same storage
contracts as SqliteRepository; vault tests run against both.
"""

import threading
from dataclasses import replace
from typing import List, Optional

import pytest

from secretplan.config import AppConfig
from secretplan.constants import (
    AUDIT_CREDENTIAL_ADDED,
    AUDIT_CREDENTIAL_DELETED,
    AUDIT_CREDENTIAL_UPDATED,
    AUDIT_SETTINGS_UPDATED,
    DEFAULT_AUDIT_LIMIT,
)
from secretplan.core.errors import NotFound
from secretplan.core.models import AppSettings, AuditLogEntry, utc_now
from secretplan.core.repository import (
    AuditLog,
    CredentialStore,
    SettingsStore,
    breach_action,
)
from secretplan.core.storage import SqliteRepository
from secretplan.core.strength import SimpleStrengthCalculator
from secretplan.core.vault import VaultManager

MASTER_PASSWORD = "correct horse battery staple"


def fast_settings(**overrides) -> AppSettings:
    values = dict(argon2_memory_kb=8192, argon2_iterations=1, argon2_parallelism=1)
    values.update(overrides)
    return AppSettings(**values)


# ── In-memory contracts ─────────────────────────────────────────────


class InMemoryRepository:
    def __init__(self):
        self.lock = threading.Lock()
        self.items = {}
        self.meta = {}
        self.entries: List[AuditLogEntry] = []
        self.credentials = InMemoryCredentialStore(self)
        self.settings = InMemorySettingsStore(self)
        self.audit_log = InMemoryAuditLog(self)

    def append_audit(self, action, item_uuid=None) -> int:
        entry_id = len(self.entries) + 1
        self.entries.append(AuditLogEntry(entry_id, utc_now(), action, item_uuid))
        return entry_id

    def close(self):
        pass


def _copy(credential):
    return replace(credential, tags=list(credential.tags))


class InMemoryCredentialStore(CredentialStore):
    def __init__(self, repo):
        self.repo = repo

    def add(self, credential):
        with self.repo.lock:
            self.repo.items[credential.uuid] = _copy(credential)
            self.repo.append_audit(
                AUDIT_CREDENTIAL_ADDED.format(site=credential.site), credential.uuid
            )

    def update(self, credential):
        with self.repo.lock:
            if credential.uuid not in self.repo.items:
                raise NotFound(credential.uuid)
            self.repo.items[credential.uuid] = _copy(credential)
            self.repo.append_audit(
                AUDIT_CREDENTIAL_UPDATED.format(site=credential.site), credential.uuid
            )

    def delete(self, uuid):
        with self.repo.lock:
            if uuid not in self.repo.items:
                raise NotFound(uuid)
            site = self.repo.items.pop(uuid).site
            self.repo.append_audit(AUDIT_CREDENTIAL_DELETED.format(site=site), uuid)
            return site

    def get(self, uuid):
        with self.repo.lock:
            if uuid not in self.repo.items:
                raise NotFound(uuid)
            return _copy(self.repo.items[uuid])

    def list(self, filter=None):
        with self.repo.lock:
            found = [
                _copy(c)
                for c in self.repo.items.values()
                if filter is None or filter.matches(c)
            ]
        return sorted(found, key=lambda c: (c.site, c.username))

    def update_breach_state(self, uuid, state):
        with self.repo.lock:
            if uuid not in self.repo.items:
                raise NotFound(uuid)
            self.repo.items[uuid].breach_state = state
            self.repo.append_audit(breach_action(state), uuid)

    def exists(self, uuid):
        with self.repo.lock:
            return uuid in self.repo.items


class InMemorySettingsStore(SettingsStore):
    def __init__(self, repo):
        self.repo = repo

    def get_encrypted_settings(self):
        return self.repo.meta.get("settings")

    def save_encrypted_settings(self, nonce, ciphertext):
        self.repo.meta["settings"] = (bytes(nonce), bytes(ciphertext))

    def update_settings(self, nonce, ciphertext):
        with self.repo.lock:
            self.repo.meta["settings"] = (bytes(nonce), bytes(ciphertext))
            self.repo.append_audit(AUDIT_SETTINGS_UPDATED)

    def get_master_password_hash(self) -> Optional[str]:
        return self.repo.meta.get("master_password_hash")

    def save_master_password_hash(self, password_hash):
        self.repo.meta["master_password_hash"] = password_hash


class InMemoryAuditLog(AuditLog):
    def __init__(self, repo):
        self.repo = repo

    def add(self, action, item_uuid=None):
        with self.repo.lock:
            return self.repo.append_audit(action, item_uuid)

    def get(self, limit=None):
        limit = DEFAULT_AUDIT_LIMIT if limit is None else max(0, limit)
        with self.repo.lock:
            return list(reversed(self.repo.entries))[:limit]


# ── Fixtures ────────────────────────────────────────────────────────


@pytest.fixture
def settings():
    return fast_settings()


@pytest.fixture
def memory_repo():
    return InMemoryRepository()


@pytest.fixture
def sqlite_repo(tmp_path):
    repo = SqliteRepository(tmp_path / "vault.db")
    yield repo
    repo.close()


@pytest.fixture(params=["sqlite", "memory"])
def repo(request, tmp_path):
    """Each vault test runs once per storage backend"""
    if request.param == "memory":
        yield InMemoryRepository()
        return
    repo = SqliteRepository(tmp_path / "vault.db")
    yield repo
    repo.close()


def make_vault(repo, settings=None, strength_calculator=None) -> VaultManager:
    return VaultManager(
        repo.credentials,
        repo.settings,
        repo.audit_log,
        strength_calculator or SimpleStrengthCalculator(),
        settings or fast_settings(),
    )


@pytest.fixture
def vault(repo):
    return make_vault(repo)


@pytest.fixture
def unlocked_vault(vault):
    vault.unlock(MASTER_PASSWORD)
    return vault


@pytest.fixture
def app_config(tmp_path):
    return AppConfig(
        data_dir=tmp_path,
        kdf_memory_kb=8192,
        kdf_iterations=1,
        kdf_parallelism=1,
    )
