"""
Data model for SecretPlan
Credentials, secrets, settings and audit entries
"""

import json
import uuid as uuid_lib
from dataclasses import dataclass, field, asdict
from datetime import datetime, timezone
from enum import IntEnum
from typing import Dict, List, Optional

from secretplan.constants import (
    ARGON2_ITERATIONS,
    ARGON2_MEMORY_KB,
    ARGON2_PARALLELISM,
    AUTO_LOCK_MINUTES,
)
from secretplan.core.errors import SerializationFailure


def utc_now() -> datetime:
    """Current UTC time truncated to whole seconds (the storage resolution)"""
    return datetime.now(timezone.utc).replace(microsecond=0)


def to_timestamp(value: Optional[datetime]) -> Optional[int]:
    if value is None:
        return None
    if value.tzinfo is None:
        value = value.replace(tzinfo=timezone.utc)
    return int(value.timestamp())


def from_timestamp(value: Optional[int]) -> Optional[datetime]:
    if value is None:
        return None
    return datetime.fromtimestamp(int(value), tz=timezone.utc)


def normalize_tags(tags) -> List[str]:
    """Keep first occurrence order, drop duplicates and blanks"""
    result = []
    for tag in tags or []:
        tag = str(tag).strip()
        if tag and tag not in result:
            result.append(tag)
    return result


class BreachState(IntEnum):
    UNKNOWN = 0
    SAFE = 1
    COMPROMISED = 2


@dataclass
class Secret:
    """Plaintext payload; only ever held in memory while unlocked"""

    password: str
    notes: Optional[str] = None
    totp: Optional[str] = None
    custom_fields: Dict[str, str] = field(default_factory=dict)

    def to_json(self) -> bytes:
        try:
            return json.dumps(asdict(self), ensure_ascii=False).encode("utf-8")
        except (TypeError, ValueError) as e:
            raise SerializationFailure(f"Failed to serialize secret: {e}") from e

    @classmethod
    def from_json(cls, data: bytes) -> "Secret":
        try:
            raw = json.loads(data.decode("utf-8"))
            return cls(
                password=raw["password"],
                notes=raw.get("notes"),
                totp=raw.get("totp"),
                custom_fields=dict(raw.get("custom_fields") or {}),
            )
        except (UnicodeDecodeError, ValueError, KeyError, TypeError) as e:
            raise SerializationFailure(f"Failed to deserialize secret: {e}") from e

    def __repr__(self):
        return "Secret(password='***')"


@dataclass
class Credential:
    """Credential metadata plus the opaque encrypted secret container"""

    site: str
    username: str
    secret_enc: str
    uuid: str = field(default_factory=lambda: str(uuid_lib.uuid4()))
    tags: List[str] = field(default_factory=list)
    created_at: datetime = field(default_factory=utc_now)
    updated_at: datetime = field(default_factory=utc_now)
    expires_at: Optional[datetime] = None
    strength: int = 0
    breach_state: BreachState = BreachState.UNKNOWN

    @property
    def associated_data(self) -> bytes:
        return context_for(self.site, self.username)

    def to_dict(self) -> dict:
        """Metadata view for the UI layer (never includes plaintext)"""
        return {
            "uuid": self.uuid,
            "site": self.site,
            "username": self.username,
            "tags": list(self.tags),
            "created_at": self.created_at.isoformat(),
            "updated_at": self.updated_at.isoformat(),
            "expires_at": self.expires_at.isoformat() if self.expires_at else None,
            "strength": self.strength,
            "breach_state": self.breach_state.name.lower(),
        }


def context_for(site: str, username: str) -> bytes:
    """Associated data binding a secret to its site and username"""
    return f"{site}:{username}".encode("utf-8")


@dataclass
class AppSettings:
    argon2_memory_kb: int = ARGON2_MEMORY_KB
    argon2_iterations: int = ARGON2_ITERATIONS
    argon2_parallelism: int = ARGON2_PARALLELISM
    use_biometrics: bool = True
    auto_lock_timeout: int = AUTO_LOCK_MINUTES  # minutes, 0 = never
    enable_sync: bool = False
    sync_config: Optional[Dict[str, str]] = None

    def to_json(self) -> bytes:
        try:
            return json.dumps(asdict(self)).encode("utf-8")
        except (TypeError, ValueError) as e:
            raise SerializationFailure(f"Failed to serialize settings: {e}") from e

    @classmethod
    def from_json(cls, data: bytes) -> "AppSettings":
        try:
            raw = json.loads(data.decode("utf-8"))
            known = {k: v for k, v in raw.items() if k in cls.__dataclass_fields__}
            return cls(**known)
        except (UnicodeDecodeError, ValueError, TypeError, AttributeError) as e:
            raise SerializationFailure(f"Failed to deserialize settings: {e}") from e


@dataclass
class AuditLogEntry:
    id: int
    timestamp: datetime
    action: str
    item_uuid: Optional[str] = None


@dataclass
class CredentialFilter:
    """Optional constraints combined with AND; None means unconstrained"""

    search_term: Optional[str] = None
    tag: Optional[str] = None
    min_strength: Optional[int] = None
    breach_state: Optional[BreachState] = None

    def matches(self, credential: Credential) -> bool:
        if self.search_term is not None:
            term = self.search_term.lower()
            if (
                term not in credential.site.lower()
                and term not in credential.username.lower()
            ):
                return False
        if self.tag is not None and self.tag not in credential.tags:
            return False
        if self.min_strength is not None and credential.strength < self.min_strength:
            return False
        if (
            self.breach_state is not None
            and credential.breach_state != self.breach_state
        ):
            return False
        return True
