"""
Generated credentials for provisioned accounts.

Usernames follow ``<first><last initial><3 digits>`` (at most 20 chars) and
fall back to ``user_<8 hex>`` once the retry budget is spent. Passwords
always contain a lowercase letter, an uppercase letter, a digit and a
symbol, and are shuffled so the guaranteed characters are not positional.
"""
import re
import secrets
import uuid
from typing import Awaitable, Callable

from edutrack.core.config import settings

LOWERCASE = "abcdefghijklmnopqrstuvwxyz"
UPPERCASE = "ABCDEFGHIJKLMNOPQRSTUVWXYZ"
DIGITS = "0123456789"
SYMBOLS = "!@#$%^&*()_+~`|}{[]\\:;?><,./-="
CHARACTER_CLASSES = (LOWERCASE, UPPERCASE, DIGITS, SYMBOLS)
PASSWORD_CHARSET = "".join(CHARACTER_CLASSES)

USERNAME_MAX_LENGTH = 20

_random = secrets.SystemRandom()


def generate_strong_password(length: int = None) -> str:
    """Random password with at least one character from every class"""
    length = length or settings.GENERATED_PASSWORD_LENGTH
    if length < len(CHARACTER_CLASSES):
        raise ValueError(f"Password length must be at least {len(CHARACTER_CLASSES)}")

    chars = [secrets.choice(charset) for charset in CHARACTER_CLASSES]
    chars += [secrets.choice(PASSWORD_CHARSET) for _ in range(length - len(chars))]
    _random.shuffle(chars)
    return "".join(chars)


def candidate_username(first_name: str, last_name: str) -> str:
    first = re.sub(r"[^a-z0-9]", "", first_name.lower())
    last = re.sub(r"[^a-z0-9]", "", last_name.lower())
    suffix = 100 + secrets.randbelow(900)
    return f"{first}{last[:1]}{suffix}"[:USERNAME_MAX_LENGTH]


def fallback_username() -> str:
    return f"user_{uuid.uuid4().hex[:8]}"


async def generate_unique_username(
    first_name: str,
    last_name: str,
    exists: Callable[[str], Awaitable[bool]],
    max_attempts: int = None,
) -> str:
    """
    Username not yet taken according to ``exists``.

    ``exists`` runs against the caller's open transaction so the check and
    the insert see the same snapshot.
    """
    max_attempts = max_attempts or settings.USERNAME_MAX_ATTEMPTS
    for _ in range(max_attempts):
        username = candidate_username(first_name, last_name)
        if not await exists(username):
            return username
    return fallback_username()
