"""
Password Breach Checker for SecretPlan
Checks if passwords have been leaked using the Have I Been Pwned range API
"""

import hashlib
import logging
import re
from abc import ABC, abstractmethod
from typing import Optional

import requests

from secretplan.constants import APP_NAME, APP_VERSION, BREACH_CHECK_TIMEOUT, HIBP_API_URL
from secretplan.core.errors import BreachCheckFailed, ServiceError
from secretplan.core.models import BreachState

logger = logging.getLogger(__name__)

SHA1_HEX = re.compile(r"[0-9A-Fa-f]{40}")


def compute_sha1_hash(data: bytes) -> str:
    """Uppercase hex SHA-1 digest"""
    return hashlib.sha1(data).hexdigest().upper()


def parse_range_response(suffix: str, body: str) -> BreachState:
    """Match a 35-char suffix against "SUFFIX:COUNT" lines"""
    suffix = suffix.upper()
    for line in body.splitlines():
        if ":" not in line:
            continue
        hash_suffix, _, count = line.strip().partition(":")
        if hash_suffix.upper() != suffix:
            continue
        try:
            return (
                BreachState.COMPROMISED if int(count) > 0 else BreachState.SAFE
            )
        except ValueError:
            continue
    return BreachState.SAFE


class BreachChecker(ABC):
    @abstractmethod
    def check_password(self, sha1_hex: str) -> BreachState:
        """Classify a password by its full SHA-1 hex digest"""


class HibpBreachChecker(BreachChecker):
    """k-anonymity lookup: only the first 5 hex characters leave the machine"""

    def __init__(
        self,
        api_base_url: str = HIBP_API_URL,
        timeout: float = BREACH_CHECK_TIMEOUT,
        session: Optional[requests.Session] = None,
    ):
        self.api_base_url = api_base_url.rstrip("/")
        self.timeout = timeout
        self.session = session or requests.Session()
        self.session.headers.update({"User-Agent": f"{APP_NAME}/{APP_VERSION}"})

    def check_password(self, sha1_hex: str) -> BreachState:
        if not isinstance(sha1_hex, str) or not SHA1_HEX.fullmatch(sha1_hex):
            raise ServiceError("Expected a 40-character hexadecimal SHA-1 digest")

        sha1_hex = sha1_hex.upper()
        prefix, suffix = sha1_hex[:5], sha1_hex[5:]
        url = f"{self.api_base_url}/range/{prefix}"

        try:
            response = self.session.get(url, timeout=self.timeout)
        except requests.exceptions.Timeout as e:
            logger.warning("Breach check timed out after %s seconds", self.timeout)
            raise BreachCheckFailed("Breach check timed out") from e
        except requests.exceptions.RequestException as e:
            logger.warning("Breach check failed: %s", e)
            raise BreachCheckFailed(f"Breach check failed: {e}") from e

        if not 200 <= response.status_code < 300:
            logger.warning("Breach API returned HTTP %s", response.status_code)
            raise BreachCheckFailed(
                f"Breach API returned HTTP {response.status_code}"
            )

        return parse_range_response(suffix, response.text)
