"""
Application state for SecretPlan

The one object a UI layer holds. Construct it, call initialize() before any
other operation, and call shutdown() (or leave the with-block) to lock the
vault and close storage.
"""

import logging
import threading
from contextlib import contextmanager
from datetime import datetime
from typing import Dict, List, Optional

from secretplan.config import AppConfig, load_config
from secretplan.constants import DEFAULT_AUDIT_LIMIT, PASSWORD_DEFAULTS
from secretplan.core.errors import AuthenticationFailed, VaultNotInitialized
from secretplan.core.models import (
    AppSettings,
    AuditLogEntry,
    BreachState,
    Credential,
    CredentialFilter,
    Secret,
)
from secretplan.core.session_manager import SessionManager
from secretplan.core.storage import SqliteRepository
from secretplan.core.strength import SimpleStrengthCalculator, StrengthCalculator
from secretplan.core.vault import VaultManager
from secretplan.services.breach_service import (
    BreachChecker,
    HibpBreachChecker,
    compute_sha1_hash,
)
from secretplan.services.password_generator import generate_password

logger = logging.getLogger(__name__)


class AppState:
    """Owns the repository, the VaultManager and the session timer"""

    def __init__(
        self,
        config: Optional[AppConfig] = None,
        breach_checker: Optional[BreachChecker] = None,
        strength_calculator: Optional[StrengthCalculator] = None,
    ):
        self.config = config or load_config()
        self._breach_checker = breach_checker
        self._strength_calculator = strength_calculator or SimpleStrengthCalculator()
        self._lock = threading.Lock()
        self._repository: Optional[SqliteRepository] = None
        self._vault: Optional[VaultManager] = None
        self.session = SessionManager()

    # ========== LIFECYCLE ==========

    def initialize(self) -> bool:
        """Open storage and build the vault. Returns True if a vault already exists."""
        with self._lock:
            if self._vault is None:
                self._repository = SqliteRepository(self.config.vault_path)
                self._vault = VaultManager(
                    self._repository.credentials,
                    self._repository.settings,
                    self._repository.audit_log,
                    self._strength_calculator,
                    self.config.default_settings(),
                )
                if self._breach_checker is None:
                    self._breach_checker = HibpBreachChecker(
                        self.config.breach_api_url, self.config.breach_timeout
                    )
                self.session.set_lock_callback(self._vault.lock)
                logger.info("Opened vault at %s", self.config.vault_path)
            return self._vault.is_initialized()

    def shutdown(self):
        """Lock the vault and close storage; safe to call more than once"""
        with self._lock:
            if self._vault is None:
                return
            try:
                self._vault.lock()
            finally:
                self.session.end_session()
                self._repository.close()
                self._vault = None
                self._repository = None
            logger.info("Shut down")

    def __enter__(self):
        self.initialize()
        return self

    def __exit__(self, exc_type, exc, tb):
        self.shutdown()

    @contextmanager
    def _operation(self, touch: bool = True):
        """Serialize a vault call; touch=False leaves the idle timer alone"""
        with self._lock:
            if self._vault is None:
                raise VaultNotInitialized()
            yield self._vault
            if touch:
                self.session.update_activity()

    # ========== LOCK STATE ==========

    def unlock(self, master_password: str) -> bool:
        """False on a wrong password; any other failure propagates"""
        with self._operation() as vault:
            try:
                vault.unlock(master_password)
            except AuthenticationFailed:
                return False
            self.session.set_auto_lock_time(vault.get_settings().auto_lock_timeout)
            self.session.start_session()
            return True

    def lock(self):
        with self._operation() as vault:
            vault.lock()
            self.session.end_session()

    def is_locked(self) -> bool:
        with self._operation(touch=False) as vault:
            return not vault.is_unlocked()

    def check_auto_lock(self) -> bool:
        """Lock if the session has been idle past the timeout"""
        with self._lock:
            if self._vault is None:
                raise VaultNotInitialized()
            return self.session.check_and_lock()

    # ========== CREDENTIALS ==========

    def add_credential(
        self,
        site: str,
        username: str,
        password: str,
        notes: Optional[str] = None,
        totp: Optional[str] = None,
        custom_fields: Optional[Dict[str, str]] = None,
        tags: Optional[List[str]] = None,
        expires_at: Optional[datetime] = None,
    ) -> Credential:
        secret = Secret(
            password=password,
            notes=notes,
            totp=totp,
            custom_fields=dict(custom_fields or {}),
        )
        with self._operation() as vault:
            return vault.add_credential(site, username, secret, tags, expires_at)

    def update_credential(
        self,
        uuid: str,
        site: str,
        username: str,
        password: str,
        notes: Optional[str] = None,
        totp: Optional[str] = None,
        custom_fields: Optional[Dict[str, str]] = None,
        tags: Optional[List[str]] = None,
        expires_at: Optional[datetime] = None,
    ) -> Credential:
        secret = Secret(
            password=password,
            notes=notes,
            totp=totp,
            custom_fields=dict(custom_fields or {}),
        )
        with self._operation() as vault:
            return vault.update_credential(
                uuid, site, username, secret, tags, expires_at
            )

    def get_credential(self, uuid: str) -> Credential:
        with self._operation() as vault:
            return vault.get_credential(uuid)

    def decrypt_secret(self, uuid: str) -> Secret:
        with self._operation() as vault:
            return vault.decrypt_secret(vault.get_credential(uuid))

    def delete_credential(self, uuid: str):
        with self._operation() as vault:
            vault.delete_credential(uuid)

    def list_credentials(
        self, filter: Optional[CredentialFilter] = None
    ) -> List[Credential]:
        with self._operation() as vault:
            return vault.list_credentials(filter)

    def check_breach(self, uuid: str) -> BreachState:
        """Look the password up remotely without holding the state lock"""
        with self._operation() as vault:
            secret = vault.decrypt_secret(vault.get_credential(uuid))
            digest = compute_sha1_hash(secret.password.encode("utf-8"))
            checker = self._breach_checker
        del secret

        state = checker.check_password(digest)

        with self._operation() as vault:
            vault.update_breach_state(uuid, state)
        return state

    def get_totp_code(self, uuid: str) -> dict:
        with self._operation() as vault:
            return vault.get_totp_code(uuid)

    # ========== SETTINGS & AUDIT ==========

    def get_settings(self) -> AppSettings:
        with self._operation(touch=False) as vault:
            return vault.get_settings()

    def save_settings(self, settings: AppSettings):
        with self._operation() as vault:
            vault.save_settings(settings)
            self.session.set_auto_lock_time(settings.auto_lock_timeout)

    def get_audit_log(self, limit: int = DEFAULT_AUDIT_LIMIT) -> List[AuditLogEntry]:
        with self._operation() as vault:
            return vault.get_audit_log(limit)

    def generate_password(self, **options) -> str:
        unknown = set(options) - set(PASSWORD_DEFAULTS)
        if unknown:
            raise ValueError(f"Unknown password options: {', '.join(sorted(unknown))}")
        with self._operation():
            return generate_password(**{**PASSWORD_DEFAULTS, **options})
