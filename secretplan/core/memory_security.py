"""
Memory Security Module for SecretPlan
Holds key material in a buffer that can be wiped
"""

import ctypes


class SecureBytes:
    """
    A mutable byte buffer that can be securely wiped.
    Used for the derived master key while the vault is unlocked.
    """

    def __init__(self, data: bytes = b""):
        self._buffer = bytearray(data)
        self._is_valid = True

    def get(self) -> bytearray:
        """Return the live buffer (not a copy)"""
        if not self._is_valid:
            raise ValueError("SecureBytes has been wiped")
        return self._buffer

    def set(self, data: bytes):
        """Set new value, wiping old one first"""
        self.wipe()
        self._buffer = bytearray(data)
        self._is_valid = True

    def wipe(self):
        """Overwrite the buffer with zeros and invalidate it"""
        if self._buffer:
            size = len(self._buffer)
            ctypes.memset(
                (ctypes.c_char * size).from_buffer(self._buffer), 0, size
            )
            self._buffer = bytearray()
        self._is_valid = False

    def __del__(self):
        self.wipe()

    def __len__(self):
        return len(self._buffer) if self._is_valid else 0

    def __bool__(self):
        return self._is_valid and len(self._buffer) > 0
