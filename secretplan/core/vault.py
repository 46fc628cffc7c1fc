"""
Vault Manager for SecretPlan
Lock gate, credential lifecycle, settings encryption and the audit trail
"""

import logging
import time
from dataclasses import replace
from datetime import datetime
from typing import List, Optional

import pyotp

from secretplan.constants import (
    AUDIT_VAULT_LOCKED,
    AUDIT_VAULT_UNLOCKED,
    DEFAULT_AUDIT_LIMIT,
    SETTINGS_AAD,
)
from secretplan.core.crypto import CryptoService
from secretplan.core.errors import (
    AuthenticationFailed,
    InvalidFormat,
    NotFound,
    VaultLocked,
)
from secretplan.core.models import (
    AppSettings,
    AuditLogEntry,
    BreachState,
    Credential,
    CredentialFilter,
    Secret,
    context_for,
    normalize_tags,
    utc_now,
)
from secretplan.core.repository import AuditLog, CredentialStore, SettingsStore
from secretplan.core.strength import StrengthCalculator

logger = logging.getLogger(__name__)


class VaultManager:
    """The only entry point to vault data.

    Every operation other than unlock, lock, is_unlocked, is_initialized and
    get_settings raises VaultLocked unless the CryptoService holds a key.
    Encryption always happens outside the storage calls, so the crypto lock
    and the storage lock are never held at the same time.
    """

    def __init__(
        self,
        credential_store: CredentialStore,
        settings_store: SettingsStore,
        audit_log: AuditLog,
        strength_calculator: StrengthCalculator,
        settings: Optional[AppSettings] = None,
    ):
        self.credential_store = credential_store
        self.settings_store = settings_store
        self.audit_log = audit_log
        self.strength_calculator = strength_calculator
        self._default_settings = settings or AppSettings()
        self.crypto = CryptoService(replace(self._default_settings), settings_store)

    # ========== LOCK STATE ==========

    def is_unlocked(self) -> bool:
        return self.crypto.is_unlocked()

    def is_initialized(self) -> bool:
        """True once a master password verification record exists"""
        return self.settings_store.get_master_password_hash() is not None

    def unlock(self, master_password: str) -> bool:
        """Unlock the vault, creating it on first use.

        Returns True when this call created the vault. A wrong password
        raises AuthenticationFailed and writes no audit entry.
        """
        try:
            created = self.crypto.unlock(master_password)
        except AuthenticationFailed:
            logger.warning("Failed unlock attempt")
            raise

        try:
            stored = self._load_stored_settings()
            if stored is not None:
                self.crypto.update_kdf_settings(stored)
            self.audit_log.add(AUDIT_VAULT_UNLOCKED)
        except Exception:
            self.crypto.lock()
            raise

        if created:
            logger.info("New vault created")
        logger.info("Vault unlocked")
        return created

    def lock(self):
        """Wipe the key. A no-op with no audit entry when already locked."""
        if self.crypto.lock():
            self.audit_log.add(AUDIT_VAULT_LOCKED)
            logger.info("Vault locked")

    def _check_unlocked(self):
        if not self.crypto.is_unlocked():
            raise VaultLocked()

    # ========== CREDENTIALS ==========

    def add_credential(
        self,
        site: str,
        username: str,
        secret: Secret,
        tags: Optional[List[str]] = None,
        expires_at: Optional[datetime] = None,
    ) -> Credential:
        """Encrypt and store a new credential; returns metadata only"""
        self._check_unlocked()
        secret_enc = self.crypto.encrypt(secret.to_json(), context_for(site, username))
        now = utc_now()
        credential = Credential(
            site=site,
            username=username,
            secret_enc=secret_enc,
            tags=normalize_tags(tags),
            created_at=now,
            updated_at=now,
            expires_at=expires_at,
            strength=self.strength_calculator.calculate_strength(secret.password),
        )
        self.credential_store.add(credential)
        logger.debug("Added credential %s", credential.uuid)
        return credential

    def update_credential(
        self,
        uuid: str,
        site: str,
        username: str,
        secret: Secret,
        tags: Optional[List[str]] = None,
        expires_at: Optional[datetime] = None,
    ) -> Credential:
        """Re-encrypt under the (possibly new) site:username context.

        created_at and breach_state carry over from the stored record.
        """
        self._check_unlocked()
        existing = self.credential_store.get(uuid)
        secret_enc = self.crypto.encrypt(secret.to_json(), context_for(site, username))
        credential = Credential(
            uuid=existing.uuid,
            site=site,
            username=username,
            secret_enc=secret_enc,
            tags=normalize_tags(tags),
            created_at=existing.created_at,
            updated_at=utc_now(),
            expires_at=expires_at,
            strength=self.strength_calculator.calculate_strength(secret.password),
            breach_state=existing.breach_state,
        )
        self.credential_store.update(credential)
        logger.debug("Updated credential %s", uuid)
        return credential

    def delete_credential(self, uuid: str):
        self._check_unlocked()
        self.credential_store.delete(uuid)
        logger.debug("Deleted credential %s", uuid)

    def get_credential(self, uuid: str) -> Credential:
        """Metadata only; use decrypt_secret for the plaintext"""
        self._check_unlocked()
        return self.credential_store.get(uuid)

    def decrypt_secret(self, credential: Credential) -> Secret:
        self._check_unlocked()
        plaintext = self.crypto.decrypt(
            credential.secret_enc, credential.associated_data
        )
        return Secret.from_json(plaintext)

    def list_credentials(
        self, filter: Optional[CredentialFilter] = None
    ) -> List[Credential]:
        self._check_unlocked()
        return self.credential_store.list(filter)

    def update_breach_state(self, uuid: str, state: BreachState):
        self._check_unlocked()
        self.credential_store.update_breach_state(uuid, BreachState(state))
        logger.debug("Breach state of %s set to %s", uuid, BreachState(state).name)

    # ========== TOTP ==========

    def get_totp_code(self, uuid: str) -> dict:
        """Current TOTP code and seconds left in its window"""
        self._check_unlocked()
        secret = self.decrypt_secret(self.credential_store.get(uuid))
        if not secret.totp:
            raise NotFound(uuid, f"Credential with UUID {uuid} has no TOTP secret")
        value = secret.totp.strip()
        if not value:
            raise InvalidFormat("TOTP secret is blank")

        try:
            if value.startswith("otpauth://"):
                totp = pyotp.parse_uri(value)
                if not isinstance(totp, pyotp.TOTP):
                    raise InvalidFormat("Only time-based OTP URIs are supported")
            else:
                totp = pyotp.TOTP("".join(value.split()).upper())
            code = totp.now()
        except (ValueError, TypeError) as e:
            raise InvalidFormat(f"Invalid TOTP secret: {e}") from e

        remaining = totp.interval - int(time.time()) % totp.interval
        return {"code": code, "remaining": remaining}

    # ========== SETTINGS ==========

    def get_settings(self) -> AppSettings:
        """Decrypted settings, or defaults while locked or never saved"""
        if not self.crypto.is_unlocked():
            return replace(self._default_settings)
        stored = self._load_stored_settings()
        return stored if stored is not None else replace(self.crypto.settings)

    def save_settings(self, settings: AppSettings):
        """Encrypt and store settings; new KDF parameters apply to future hashes"""
        self._check_unlocked()
        self.crypto.validate_kdf_settings(settings)
        nonce, ciphertext = self.crypto.encrypt_with_nonce(
            settings.to_json(), SETTINGS_AAD
        )
        self.settings_store.update_settings(nonce, ciphertext)
        self.crypto.update_kdf_settings(settings)
        logger.info("Settings saved")

    def _load_stored_settings(self) -> Optional[AppSettings]:
        stored = self.settings_store.get_encrypted_settings()
        if stored is None:
            return None
        nonce, ciphertext = stored
        plaintext = self.crypto.decrypt_with_nonce(ciphertext, SETTINGS_AAD, nonce)
        return AppSettings.from_json(plaintext)

    # ========== AUDIT ==========

    def get_audit_log(self, limit: int = DEFAULT_AUDIT_LIMIT) -> List[AuditLogEntry]:
        self._check_unlocked()
        return self.audit_log.get(limit)
