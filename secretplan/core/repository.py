"""
Storage contracts consumed by the VaultManager.

Any durable store can back the vault as long as every credential mutation
and its audit entry commit together or not at all.
"""

from abc import ABC, abstractmethod
from typing import List, Optional, Tuple

from secretplan.constants import (
    AUDIT_BREACH_RESET,
    AUDIT_MARKED_COMPROMISED,
    AUDIT_MARKED_SAFE,
)
from secretplan.core.models import (
    AuditLogEntry,
    BreachState,
    Credential,
    CredentialFilter,
)


class CredentialStore(ABC):
    """Credential persistence. Each mutation appends exactly one audit entry."""

    @abstractmethod
    def add(self, credential: Credential) -> None:
        """Insert the credential and audit "Added credential for {site}"."""

    @abstractmethod
    def update(self, credential: Credential) -> None:
        """Replace the stored record; raises NotFound if the uuid is absent."""

    @abstractmethod
    def delete(self, uuid: str) -> str:
        """Remove the record and return its site; raises NotFound if absent."""

    @abstractmethod
    def get(self, uuid: str) -> Credential:
        """Raises NotFound if absent."""

    @abstractmethod
    def list(self, filter: Optional[CredentialFilter] = None) -> List[Credential]:
        """Matching records ordered by site then username.

        The search term matches site or username as a substring, compared
        after Unicode lower-casing.
        """

    @abstractmethod
    def update_breach_state(self, uuid: str, state: BreachState) -> None:
        """Raises NotFound if absent."""

    @abstractmethod
    def exists(self, uuid: str) -> bool:
        pass


class SettingsStore(ABC):
    """Opaque blob storage for the settings container and master hash"""

    @abstractmethod
    def get_encrypted_settings(self) -> Optional[Tuple[bytes, bytes]]:
        """Return (nonce, ciphertext) or None if never saved."""

    @abstractmethod
    def save_encrypted_settings(self, nonce: bytes, ciphertext: bytes) -> None:
        pass

    @abstractmethod
    def update_settings(self, nonce: bytes, ciphertext: bytes) -> None:
        """Store the settings and audit "Updated app settings" in one transaction."""

    @abstractmethod
    def get_master_password_hash(self) -> Optional[str]:
        pass

    @abstractmethod
    def save_master_password_hash(self, password_hash: str) -> None:
        pass


class AuditLog(ABC):
    """Append-only audit trail with store-assigned increasing ids"""

    @abstractmethod
    def add(self, action: str, item_uuid: Optional[str] = None) -> int:
        pass

    @abstractmethod
    def get(self, limit: Optional[int] = None) -> List[AuditLogEntry]:
        """Most recent entries first."""


def breach_action(state: BreachState) -> str:
    """Fixed audit text for a breach state transition"""
    if state == BreachState.SAFE:
        return AUDIT_MARKED_SAFE
    if state == BreachState.COMPROMISED:
        return AUDIT_MARKED_COMPROMISED
    return AUDIT_BREACH_RESET
