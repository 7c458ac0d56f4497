"""
auth/passwords.py -- Password hashing, verification and complexity rules.

Hashing scheme:
  Current records carry a per-identity random salt (secrets.token_hex(32))
  stored next to the hash. The salt is mixed in with HMAC-SHA256 and the
  base64 digest is what bcrypt sees. Concatenating password + salt directly
  would push most inputs past bcrypt's 72-byte limit, silently dropping salt
  bytes on bcrypt 4.x and raising on bcrypt 5.x. The digest is always 44
  bytes and contains no NUL bytes.

  Legacy records (salt is None) hold a plain bcrypt hash of the password.
  verify_legacy() checks those; the orchestrator upgrades them on the next
  successful login.

  needs_rehash() compares the cost encoded in the hash ("$2b$12$...") to the
  configured minimum. Raising Settings.bcrypt_rounds therefore upgrades every
  identity transparently as they log in.

Timing:
  verify_dummy() runs one bcrypt check against a hash computed at
  construction so a login for an unknown email costs the same as a wrong
  password [C1].
"""

from __future__ import annotations

import base64
import hashlib
import hmac
import re
import secrets
import string

import bcrypt

from auth.models import ComplexityResult, PasswordContext, SaltedHash
from core.config import Settings

SPECIAL_CHARS = "!@#$%^&*()_+-=[]{}|;:,.<>?"

COMMON_PASSWORDS = frozenset(
    {
        "password",
        "123456",
        "123456789",
        "qwerty",
        "abc123",
        "password123",
        "111111",
        "123123",
        "admin",
        "letmein",
        "welcome",
        "monkey",
        "1234567890",
        "password1",
        "123qwe",
        "qwerty123",
        "iloveyou",
    }
)

_REPEATED_PAIR = re.compile(r"(..).*\1")
_ASCENDING_RUN = re.compile(
    r"abc|bcd|cde|def|efg|fgh|ghi|hij|ijk|jkl|klm|lmn|mno|nop|opq|pqr|qrs|rst|stu|tuv|uvw|vwx|wxy|xyz"
    r"|123|234|345|456|567|678|789",
    re.IGNORECASE,
)

_BCRYPT_MAX_BYTES = 72


def _bcrypt_cost(hashed: str) -> int | None:
    """Return the cost factor encoded in a bcrypt hash, or None if unparseable."""
    parts = hashed.split("$")
    if len(parts) < 4 or not parts[2].isdigit():
        return None
    return int(parts[2])


class PasswordService:
    """Hash, verify and police passwords according to the configured policy."""

    def __init__(self, settings: Settings) -> None:
        self._settings = settings
        self._rounds = settings.bcrypt_rounds
        # Timing equalization dummy [C1]. Computed once so the first unknown
        # email is not measurably slower than the rest.
        self._dummy = self.hash_with_salt("inkpress_timing_dummy")

    # ------------------------------------------------------------------
    # Hashing
    # ------------------------------------------------------------------

    @staticmethod
    def _salted_input(password: str, salt: str) -> bytes:
        digest = hmac.new(salt.encode("utf-8"), password.encode("utf-8"), hashlib.sha256).digest()
        return base64.b64encode(digest)

    def hash_with_salt(self, password: str) -> SaltedHash:
        """Hash a password under a fresh random salt at the configured bcrypt cost."""
        salt = secrets.token_hex(32)
        hashed = bcrypt.hashpw(self._salted_input(password, salt), bcrypt.gensalt(rounds=self._rounds))
        return SaltedHash(hash=hashed.decode("utf-8"), salt=salt)

    def verify_with_salt(self, password: str, hashed: str, salt: str) -> bool:
        try:
            return bcrypt.checkpw(self._salted_input(password, salt), hashed.encode("utf-8"))
        except ValueError:
            return False

    def verify_legacy(self, password: str, hashed: str) -> bool:
        """Check a pre-salting record: plain bcrypt over the password bytes."""
        try:
            return bcrypt.checkpw(password.encode("utf-8")[:_BCRYPT_MAX_BYTES], hashed.encode("utf-8"))
        except ValueError:
            return False

    def verify_dummy(self, password: str) -> bool:
        """Burn one bcrypt check and return False. Used when the identity does not exist."""
        self.verify_with_salt(password, self._dummy.hash, self._dummy.salt)
        return False

    def needs_rehash(self, hashed: str) -> bool:
        cost = _bcrypt_cost(hashed)
        return cost is None or cost < self._rounds

    # ------------------------------------------------------------------
    # Policy
    # ------------------------------------------------------------------

    def validate_complexity(self, password: str, context: PasswordContext | None = None) -> ComplexityResult:
        """Check a candidate password against the policy. Never raises.

        Returns every violated rule as a human-readable message so the
        boundary can show them all at once.
        """
        s = self._settings
        errors: list[str] = []
        points = 0

        if len(password) < s.password_min_length:
            errors.append(f"Password must be at least {s.password_min_length} characters long.")
        else:
            points += min(len(password) - s.password_min_length, 4)

        has_upper = any(c.isupper() for c in password)
        has_lower = any(c.islower() for c in password)
        has_digit = any(c.isdigit() for c in password)
        has_special = any(c in SPECIAL_CHARS for c in password)

        if s.password_require_uppercase and not has_upper:
            errors.append("Password must contain at least one uppercase letter.")
        if s.password_require_lowercase and not has_lower:
            errors.append("Password must contain at least one lowercase letter.")
        if s.password_require_digit and not has_digit:
            errors.append("Password must contain at least one digit.")
        if s.password_require_special and not has_special:
            errors.append("Password must contain at least one special character (!@#$%^&* etc).")
        points += sum((has_upper, has_lower, has_digit, has_special))

        lowered = password.lower()
        if s.password_forbid_common and lowered in COMMON_PASSWORDS:
            errors.append("Password is too common.")

        if s.password_forbid_personal_info and context is not None:
            local_part = context.email.split("@", 1)[0].strip().lower()
            if local_part and local_part in lowered:
                errors.append("Password must not contain your email username.")
            name = context.name.strip().lower()
            if name and name in lowered:
                errors.append("Password must not contain your name.")

        if s.password_forbid_repeats and _REPEATED_PAIR.search(password):
            errors.append("Password must not repeat character sequences.")
        if s.password_forbid_sequences and _ASCENDING_RUN.search(password):
            errors.append("Password must not contain sequential characters such as 'abc' or '123'.")

        if points < 3:
            strength = "weak"
        elif points < 5:
            strength = "medium"
        elif points < 7:
            strength = "strong"
        else:
            strength = "very_strong"

        return ComplexityResult(is_valid=not errors, errors=errors, strength=strength)


def score(password: str) -> int:
    """Heuristic 0-100 strength score for UI meters. Not a policy check."""
    total = min(len(password) * 2, 20)
    if any(c.islower() for c in password):
        total += 5
    if any(c.isupper() for c in password):
        total += 5
    if any(c.isdigit() for c in password):
        total += 5
    if any(c in SPECIAL_CHARS for c in password):
        total += 10
    total += min(len(set(password)) * 2, 20)
    if _REPEATED_PAIR.search(password):
        total -= 10
    if password.lower() in COMMON_PASSWORDS:
        total -= 20
    return max(0, min(100, total))


def generate_secure_password(length: int = 12) -> str:
    """Return a random password that contains every required character class."""
    if length < 8:
        raise ValueError("Generated passwords must be at least 8 characters.")
    specials = "!@#$%^&*"
    pools = (string.ascii_uppercase, string.ascii_lowercase, string.digits, specials)
    chars = [secrets.choice(pool) for pool in pools]
    alphabet = "".join(pools)
    chars.extend(secrets.choice(alphabet) for _ in range(length - len(chars)))
    secrets.SystemRandom().shuffle(chars)
    return "".join(chars)
