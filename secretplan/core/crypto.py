"""
Key derivation and authenticated encryption for SecretPlan.

Argon2id turns the master password into two things that share one salt:
a self-describing PHC hash string used only for verification, and 32 raw
key bytes used for AES-256-GCM. Every encryption draws a fresh 96-bit nonce
and binds the ciphertext to a caller-supplied associated-data context.
"""

import base64
import binascii
import json
import logging
import os
import threading
from typing import Optional, Tuple, Union

from argon2 import PasswordHasher, Type, extract_parameters
from argon2.exceptions import (
    HashingError,
    InvalidHashError,
    VerificationError,
    VerifyMismatchError,
)
from argon2.low_level import hash_secret_raw
from cryptography.exceptions import InvalidTag
from cryptography.hazmat.primitives.ciphers.aead import AESGCM

from secretplan.constants import KEY_SIZE, NONCE_SIZE, SALT_SIZE
from secretplan.core.errors import (
    AuthenticationFailed,
    DecryptionFailed,
    EncryptionFailed,
    InvalidFormat,
    KeyDerivationFailed,
    VaultLocked,
)
from secretplan.core.memory_security import SecureBytes
from secretplan.core.models import AppSettings

logger = logging.getLogger(__name__)

AssociatedData = Union[str, bytes]


def _as_bytes(data: AssociatedData) -> bytes:
    return data.encode("utf-8") if isinstance(data, str) else bytes(data)


def salt_from_hash(encoded_hash: str) -> bytes:
    """Extract the raw salt embedded in an Argon2 PHC string.

    Format: ``$argon2id$v=19$m=...,t=...,p=...$<salt>$<digest>`` where salt
    and digest are unpadded standard base64.
    """
    parts = encoded_hash.split("$")
    if len(parts) != 6 or not parts[1].startswith("argon2"):
        raise KeyDerivationFailed("Invalid stored hash format")
    salt_b64 = parts[4]
    try:
        salt = base64.b64decode(salt_b64 + "=" * (-len(salt_b64) % 4), validate=True)
    except (binascii.Error, ValueError) as e:
        raise KeyDerivationFailed(f"Invalid salt in stored hash: {e}") from e
    if not salt:
        raise KeyDerivationFailed("Missing salt in stored hash")
    return salt


class CryptoService:
    """Holds the master key while unlocked and performs all AEAD operations.

    Locked (no key) -> unlock(password) -> Unlocked (key in memory)
    Unlocked -> lock() -> Locked (key wiped, verification hash retained)
    """

    def __init__(self, settings: Optional[AppSettings] = None, settings_store=None):
        self._settings = settings or AppSettings()
        self._settings_store = settings_store
        self._master_key = SecureBytes()
        self._master_key.wipe()
        self._master_password_hash: Optional[str] = None
        self._lock = threading.Lock()

    # ========== STATE ==========

    @property
    def settings(self) -> AppSettings:
        return self._settings

    @property
    def master_password_hash(self) -> Optional[str]:
        return self._master_password_hash

    def is_unlocked(self) -> bool:
        with self._lock:
            return bool(self._master_key)

    def unlock(self, master_password: str) -> bool:
        """Unlock with the master password.

        Returns True when this call created the vault (no verification hash
        existed yet), False when an existing hash was verified. Raises
        AuthenticationFailed on a wrong password; state stays Locked.
        """
        if self._settings_store is not None:
            self._master_password_hash = self._settings_store.get_master_password_hash()

        stored_hash = self._master_password_hash
        created = stored_hash is None

        if created:
            key, new_hash = self._derive_key_and_hash(master_password)
            if self._settings_store is not None:
                self._settings_store.save_master_password_hash(new_hash)
            stored_hash = new_hash
            logger.info("Created new master password verification record")
        else:
            key = self._verify_password_and_derive_key(master_password, stored_hash)

        with self._lock:
            self._master_key.set(key)
            self._master_password_hash = stored_hash
        return created

    def lock(self) -> bool:
        """Wipe the key. Returns True if the service was unlocked."""
        with self._lock:
            was_unlocked = bool(self._master_key)
            self._master_key.wipe()
        return was_unlocked

    def update_kdf_settings(self, settings: AppSettings):
        """Apply new KDF cost parameters to future hash creation.

        The existing verification hash is not re-hashed; unlock keeps using
        the parameters embedded in that hash.
        """
        self._settings = settings

    def validate_kdf_settings(self, settings: AppSettings):
        """Raise KeyDerivationFailed if the parameters cannot build a hasher"""
        self._password_hasher(settings)

    # ========== KEY DERIVATION ==========

    def _password_hasher(self, settings: Optional[AppSettings] = None) -> PasswordHasher:
        settings = settings or self._settings
        values = (
            settings.argon2_iterations,
            settings.argon2_memory_kb,
            settings.argon2_parallelism,
        )
        if not all(isinstance(v, int) and v >= 1 for v in values):
            raise KeyDerivationFailed("Argon2 parameters must be positive integers")
        if settings.argon2_memory_kb < 8 * settings.argon2_parallelism:
            raise KeyDerivationFailed(
                "Argon2 memory must be at least 8 KB per parallel lane"
            )
        try:
            return PasswordHasher(
                time_cost=settings.argon2_iterations,
                memory_cost=settings.argon2_memory_kb,
                parallelism=settings.argon2_parallelism,
                hash_len=KEY_SIZE,
                salt_len=SALT_SIZE,
                type=Type.ID,
            )
        except (TypeError, ValueError) as e:
            raise KeyDerivationFailed(f"Failed to build Argon2 parameters: {e}") from e

    def _derive_key_and_hash(self, master_password: str) -> Tuple[bytes, str]:
        """Fresh salt; derive raw key and storable hash from the same salt"""
        salt = os.urandom(SALT_SIZE)
        hasher = self._password_hasher()
        try:
            password_hash = hasher.hash(master_password, salt=salt)
            key = hash_secret_raw(
                secret=master_password.encode("utf-8"),
                salt=salt,
                time_cost=hasher.time_cost,
                memory_cost=hasher.memory_cost,
                parallelism=hasher.parallelism,
                hash_len=KEY_SIZE,
                type=Type.ID,
            )
        except (HashingError, TypeError, ValueError) as e:
            raise KeyDerivationFailed(f"Key derivation failed: {e}") from e
        return key, password_hash

    def _verify_password_and_derive_key(
        self, master_password: str, stored_hash: str
    ) -> bytes:
        try:
            params = extract_parameters(stored_hash)
        except (InvalidHashError, ValueError, KeyError, IndexError) as e:
            raise KeyDerivationFailed(f"Invalid stored hash format: {e}") from e
        salt = salt_from_hash(stored_hash)

        try:
            PasswordHasher.from_parameters(params).verify(stored_hash, master_password)
        except VerifyMismatchError as e:
            raise AuthenticationFailed() from e
        except (VerificationError, InvalidHashError) as e:
            raise KeyDerivationFailed(f"Password verification failed: {e}") from e

        try:
            return hash_secret_raw(
                secret=master_password.encode("utf-8"),
                salt=salt,
                time_cost=params.time_cost,
                memory_cost=params.memory_cost,
                parallelism=params.parallelism,
                hash_len=KEY_SIZE,
                type=params.type,
            )
        except (HashingError, TypeError, ValueError) as e:
            raise KeyDerivationFailed(f"Key re-derivation failed: {e}") from e

    # ========== ENCRYPTION ==========

    def encrypt(self, plaintext: bytes, associated_data: AssociatedData) -> str:
        """Encrypt into a JSON container of base64 nonce and ciphertext"""
        nonce, ciphertext = self._encrypt_raw(plaintext, associated_data)
        return json.dumps(
            {
                "nonce": base64.b64encode(nonce).decode("ascii"),
                "ciphertext": base64.b64encode(ciphertext).decode("ascii"),
            }
        )

    def encrypt_with_nonce(
        self, plaintext: bytes, associated_data: AssociatedData
    ) -> Tuple[bytes, bytes]:
        """Encrypt and return (nonce, ciphertext) for stores with a nonce column"""
        return self._encrypt_raw(plaintext, associated_data)

    def decrypt(self, container: str, associated_data: AssociatedData) -> bytes:
        """Decrypt a container produced by encrypt() under the same context"""
        try:
            parsed = json.loads(container)
            nonce_b64 = parsed["nonce"]
            ciphertext_b64 = parsed["ciphertext"]
        except (TypeError, ValueError, KeyError) as e:
            raise InvalidFormat(f"Invalid container format: {e}") from e

        try:
            nonce = base64.b64decode(nonce_b64, validate=True)
        except (binascii.Error, TypeError, ValueError) as e:
            raise InvalidFormat(f"Invalid nonce encoding: {e}") from e
        try:
            ciphertext = base64.b64decode(ciphertext_b64, validate=True)
        except (binascii.Error, TypeError, ValueError) as e:
            raise InvalidFormat(f"Invalid ciphertext encoding: {e}") from e

        return self._decrypt_raw(ciphertext, associated_data, nonce)

    def decrypt_with_nonce(
        self, ciphertext: bytes, associated_data: AssociatedData, nonce: bytes
    ) -> bytes:
        return self._decrypt_raw(ciphertext, associated_data, nonce)

    def _encrypt_raw(
        self, plaintext: bytes, associated_data: AssociatedData
    ) -> Tuple[bytes, bytes]:
        aad = _as_bytes(associated_data)
        with self._lock:
            key = self._require_key()
            nonce = os.urandom(NONCE_SIZE)
            try:
                ciphertext = AESGCM(key).encrypt(nonce, bytes(plaintext), aad)
            except (TypeError, ValueError, OverflowError) as e:
                raise EncryptionFailed(f"Encryption failed: {e}") from e
        return nonce, ciphertext

    def _decrypt_raw(
        self, ciphertext: bytes, associated_data: AssociatedData, nonce: bytes
    ) -> bytes:
        aad = _as_bytes(associated_data)
        with self._lock:
            key = self._require_key()
            if len(nonce) != NONCE_SIZE:
                raise InvalidFormat(f"Nonce must be {NONCE_SIZE} bytes")
            try:
                return AESGCM(key).decrypt(nonce, bytes(ciphertext), aad)
            except InvalidTag as e:
                raise DecryptionFailed(
                    "Decryption failed: authentication tag mismatch"
                ) from e
            except (TypeError, ValueError) as e:
                raise DecryptionFailed(f"Decryption failed: {e}") from e

    def _require_key(self) -> bytearray:
        """Caller must hold self._lock"""
        if not self._master_key:
            raise VaultLocked()
        return self._master_key.get()
