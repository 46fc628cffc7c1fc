from secretplan.services.breach_service import (
    BreachChecker,
    HibpBreachChecker,
    compute_sha1_hash,
    parse_range_response,
)
from secretplan.services.password_generator import generate_password

__all__ = [
    "BreachChecker",
    "HibpBreachChecker",
    "compute_sha1_hash",
    "parse_range_response",
    "generate_password",
]
