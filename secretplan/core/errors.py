"""
Exception classes for the SecretPlan vault engine.

Every failure raised by the core is a VaultError subclass so callers can
tell a wrong password apart from a locked vault or a broken store.
"""


class VaultError(Exception):
    """Base exception for vault operations"""

    pass


class VaultLocked(VaultError):
    """Raised when an operation needs the vault unlocked"""

    def __init__(self, message: str = "Vault is locked"):
        super().__init__(message)


class VaultNotInitialized(VaultError):
    """Raised when the application state is used before initialize()"""

    def __init__(self, message: str = "Vault not initialized"):
        super().__init__(message)


class AuthenticationFailed(VaultError):
    """Raised when the master password does not match"""

    def __init__(self, message: str = "Authentication failed"):
        super().__init__(message)


class NotFound(VaultError):
    """Raised when a referenced credential does not exist"""

    def __init__(self, uuid: str, message: str = None):
        self.uuid = uuid
        super().__init__(message or f"Credential with UUID {uuid} not found")


class StorageFailure(VaultError):
    """Raised when the backing store fails"""

    pass


class SerializationFailure(VaultError):
    """Raised when a payload cannot be encoded or decoded"""

    pass


class SyncFailure(VaultError):
    """Raised by sync collaborators"""

    pass


class ServiceError(VaultError):
    """Catch-all for failures in external collaborators"""

    pass


class BreachCheckFailed(ServiceError):
    """Raised when the breach database could not be queried"""

    pass


# ========== CRYPTO ERRORS ==========


class CryptoError(VaultError):
    """Base exception for cryptographic failures"""

    pass


class KeyDerivationFailed(CryptoError):
    """Raised on bad KDF parameters or a malformed stored hash"""

    pass


class EncryptionFailed(CryptoError):
    """Raised when the cipher refuses to encrypt"""

    pass


class DecryptionFailed(CryptoError):
    """Raised when decryption or tag verification fails"""

    pass


class InvalidFormat(CryptoError):
    """Raised on a malformed container, nonce or ciphertext encoding"""

    pass
