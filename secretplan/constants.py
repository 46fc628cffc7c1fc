from pathlib import Path

# Application info
APP_NAME = "SecretPlan"
APP_VERSION = "0.1.0"

# Directory paths
DATA_DIR = Path.home() / ".secretplan"
VAULT_FILE_NAME = "vault.db"
CONFIG_FILE_NAME = "config.json"
DATA_DIR_ENV = "SECRETPLAN_DATA_DIR"

# Key derivation defaults (Argon2id)
ARGON2_MEMORY_KB = 65536  # 64 MB
ARGON2_ITERATIONS = 3
ARGON2_PARALLELISM = 4

# Cipher sizes in bytes
SALT_SIZE = 16
NONCE_SIZE = 12
KEY_SIZE = 32

# Associated data for the settings container
SETTINGS_AAD = b"app_settings"

# Session defaults
AUTO_LOCK_MINUTES = 5
MAX_AUTO_LOCK_MINUTES = 120

# Audit log
DEFAULT_AUDIT_LIMIT = 100
AUDIT_VAULT_UNLOCKED = "Vault unlocked"
AUDIT_VAULT_LOCKED = "Vault locked"
AUDIT_SETTINGS_UPDATED = "Updated app settings"
AUDIT_CREDENTIAL_ADDED = "Added credential for {site}"
AUDIT_CREDENTIAL_UPDATED = "Updated credential for {site}"
AUDIT_CREDENTIAL_DELETED = "Deleted credential for {site}"
AUDIT_MARKED_SAFE = "Marked credential as safe"
AUDIT_MARKED_COMPROMISED = "Marked credential as compromised"
AUDIT_BREACH_RESET = "Reset credential breach state to unknown"

# Have I Been Pwned range API
HIBP_API_URL = "https://api.pwnedpasswords.com"
BREACH_CHECK_TIMEOUT = 10  # seconds

# Password generator defaults
SIMILAR_CHARACTERS = "Il1O0"
PASSWORD_DEFAULTS = {
    "length": 16,
    "use_uppercase": True,
    "use_lowercase": True,
    "use_numbers": True,
    "use_symbols": True,
    "exclude_similar": False,
}
