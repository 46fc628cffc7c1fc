"""
SecretPlan Core Module
Exports all core functionality
"""

from secretplan.core.crypto import CryptoService
from secretplan.core.errors import (
    AuthenticationFailed,
    BreachCheckFailed,
    CryptoError,
    DecryptionFailed,
    EncryptionFailed,
    InvalidFormat,
    KeyDerivationFailed,
    NotFound,
    SerializationFailure,
    ServiceError,
    StorageFailure,
    SyncFailure,
    VaultError,
    VaultLocked,
    VaultNotInitialized,
)
from secretplan.core.memory_security import SecureBytes
from secretplan.core.models import (
    AppSettings,
    AuditLogEntry,
    BreachState,
    Credential,
    CredentialFilter,
    Secret,
)
from secretplan.core.repository import AuditLog, CredentialStore, SettingsStore
from secretplan.core.session_manager import SessionManager
from secretplan.core.storage import SqliteRepository
from secretplan.core.strength import SimpleStrengthCalculator, StrengthCalculator
from secretplan.core.vault import VaultManager

__all__ = [
    "CryptoService",
    "VaultManager",
    "SqliteRepository",
    "CredentialStore",
    "SettingsStore",
    "AuditLog",
    "SessionManager",
    "SecureBytes",
    "StrengthCalculator",
    "SimpleStrengthCalculator",
    "AppSettings",
    "AuditLogEntry",
    "BreachState",
    "Credential",
    "CredentialFilter",
    "Secret",
    "VaultError",
    "VaultLocked",
    "VaultNotInitialized",
    "AuthenticationFailed",
    "NotFound",
    "StorageFailure",
    "SerializationFailure",
    "SyncFailure",
    "ServiceError",
    "BreachCheckFailed",
    "CryptoError",
    "KeyDerivationFailed",
    "EncryptionFailed",
    "DecryptionFailed",
    "InvalidFormat",
]
