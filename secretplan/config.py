"""
Configuration for SecretPlan

Read from an optional config.json in the data directory. The
SECRETPLAN_DATA_DIR environment variable overrides where that directory is.
"""

import json
import logging
import os
from dataclasses import dataclass
from pathlib import Path
from typing import Optional, Union

from secretplan.constants import (
    ARGON2_ITERATIONS,
    ARGON2_MEMORY_KB,
    ARGON2_PARALLELISM,
    BREACH_CHECK_TIMEOUT,
    CONFIG_FILE_NAME,
    DATA_DIR,
    DATA_DIR_ENV,
    HIBP_API_URL,
    VAULT_FILE_NAME,
)
from secretplan.core.models import AppSettings

logger = logging.getLogger(__name__)

LOG_FORMAT = "%(asctime)s [%(name)s] %(levelname)s: %(message)s"


@dataclass(frozen=True)
class AppConfig:
    data_dir: Path = DATA_DIR
    vault_file: str = VAULT_FILE_NAME
    log_level: str = "INFO"
    breach_api_url: str = HIBP_API_URL
    breach_timeout: float = BREACH_CHECK_TIMEOUT
    kdf_memory_kb: int = ARGON2_MEMORY_KB
    kdf_iterations: int = ARGON2_ITERATIONS
    kdf_parallelism: int = ARGON2_PARALLELISM

    @property
    def vault_path(self) -> Path:
        return self.data_dir / self.vault_file

    def default_settings(self) -> AppSettings:
        """Settings used before the stored ones can be decrypted"""
        return AppSettings(
            argon2_memory_kb=self.kdf_memory_kb,
            argon2_iterations=self.kdf_iterations,
            argon2_parallelism=self.kdf_parallelism,
        )


def _data_dir_from_env() -> Path:
    env = os.environ.get(DATA_DIR_ENV)
    return Path(env).expanduser() if env else DATA_DIR


def load_config(path: Optional[Union[str, Path]] = None) -> AppConfig:
    """Load config.json, falling back to defaults on any problem"""
    data_dir = _data_dir_from_env()
    config_path = Path(path) if path is not None else data_dir / CONFIG_FILE_NAME

    if not config_path.exists():
        return AppConfig(data_dir=data_dir)

    try:
        with open(config_path, "r", encoding="utf-8") as f:
            raw = json.load(f)
        if not isinstance(raw, dict):
            raise ValueError("top-level value must be an object")

        kdf = raw.get("kdf") or {}
        if not isinstance(kdf, dict):
            raise ValueError("'kdf' must be an object")

        if not os.environ.get(DATA_DIR_ENV) and raw.get("data_dir"):
            data_dir = Path(raw["data_dir"]).expanduser()

        return AppConfig(
            data_dir=data_dir,
            vault_file=str(raw.get("vault_file", VAULT_FILE_NAME)),
            log_level=str(raw.get("log_level", "INFO")).upper(),
            breach_api_url=str(raw.get("breach_api_url", HIBP_API_URL)),
            breach_timeout=float(raw.get("breach_timeout", BREACH_CHECK_TIMEOUT)),
            kdf_memory_kb=int(kdf.get("memory_kb", ARGON2_MEMORY_KB)),
            kdf_iterations=int(kdf.get("iterations", ARGON2_ITERATIONS)),
            kdf_parallelism=int(kdf.get("parallelism", ARGON2_PARALLELISM)),
        )
    except (OSError, ValueError, TypeError) as e:
        logger.warning("Ignoring unreadable config %s: %s", config_path, e)
        return AppConfig(data_dir=_data_dir_from_env())


def configure_logging(level: str = "INFO"):
    logging.basicConfig(
        level=getattr(logging, str(level).upper(), logging.INFO),
        format=LOG_FORMAT,
        datefmt="%Y-%m-%d %H:%M:%S",
    )
