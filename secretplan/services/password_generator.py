import secrets
import string

from secretplan.constants import SIMILAR_CHARACTERS

LOWERCASE = string.ascii_lowercase
UPPERCASE = string.ascii_uppercase
DIGITS = string.digits
SYMBOLS = "!@#$%^&*()-_=+[]{}|;:,.<>?"


def generate_password(
    length: int = 16,
    use_uppercase: bool = True,
    use_lowercase: bool = True,
    use_numbers: bool = True,
    use_symbols: bool = True,
    exclude_similar: bool = False,
) -> str:
    """Generate cryptographically secure random password"""
    if length < 1:
        raise ValueError("Password length must be at least 1")

    pools = []
    if use_lowercase:
        pools.append(LOWERCASE)
    if use_uppercase:
        pools.append(UPPERCASE)
    if use_numbers:
        pools.append(DIGITS)
    if use_symbols:
        pools.append(SYMBOLS)

    if exclude_similar:
        pools = ["".join(c for c in pool if c not in SIMILAR_CHARACTERS) for pool in pools]

    if not pools:
        raise ValueError("At least one character class must be selected")

    chars = "".join(pools)

    # At least one character from each selected class, as far as length allows
    password = [secrets.choice(pool) for pool in pools][:length]

    for _ in range(length - len(password)):
        password.append(secrets.choice(chars))

    secrets.SystemRandom().shuffle(password)
    return "".join(password)
