"""Password strength rules applied at registration and password change."""

import re
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional

MIN_LENGTH = 8
MAX_LENGTH = 128

SPECIAL_CHARACTERS = re.compile(r"[!@#$%^&*()_+\-=\[\]{};':\"\\|,.<>/?]")
_REPEATED = re.compile(r"(.)\1{2,}")
_SEQUENTIAL = re.compile(
    r"(?:012|123|234|345|456|567|678|789|890|abc|bcd|cde|def|efg|fgh|ghi|hij|ijk|jkl|klm"
    r"|lmn|mno|nop|opq|pqr|qrs|rst|stu|tuv|uvw|vwx|wxy|xyz)",
    re.IGNORECASE,
)

# Compared against the lowercased password
COMMON_PASSWORDS = frozenset(
    p.lower()
    for p in (
        "password", "password123", "123456", "12345678", "qwerty", "abc123", "monkey",
        "master", "dragon", "letmein", "login", "admin", "welcome", "password1", "iloveyou",
        "sunshine", "princess", "football", "baseball", "trustno1", "superman", "batman",
        "starwars", "hello123", "charlie", "donald", "passw0rd", "shadow", "ashley",
        "michael", "ninja", "mustang", "password!", "P@ssw0rd", "Password1", "Qwerty123",
        "Admin123", "Welcome1",
    )
)


@dataclass
class PasswordValidation:
    """Outcome of :func:`validate_password`."""

    is_valid: bool
    errors: List[str] = field(default_factory=list)
    strength: Dict[str, Any] = field(default_factory=dict)

    @property
    def first_error(self) -> Optional[str]:
        return self.errors[0] if self.errors else None


def contains_personal_info(password: str, email: Optional[str]) -> bool:
    """True when any part of the email longer than 2 characters appears in the password."""
    if not email:
        return False
    password_lower = password.lower()
    parts = re.split(r"[@.]", email.lower())
    return any(len(part) > 2 and part in password_lower for part in parts)


def _character_classes(password: str) -> Dict[str, bool]:
    return {
        "lower": bool(re.search(r"[a-z]", password)),
        "upper": bool(re.search(r"[A-Z]", password)),
        "digit": bool(re.search(r"\d", password)),
        "special": bool(SPECIAL_CHARACTERS.search(password)),
    }


def calculate_strength(password: str) -> Dict[str, Any]:
    """
    Score a password from 0 to 100.

    Length earns up to 30 points, each character class 10, and mixing three or
    four classes up to 20 more. Repeated characters and letter-only or
    digit-only passwords are penalized.

    Returns:
        Dict with ``score`` and ``label`` (weak, fair, good, strong, excellent)
    """
    score = min(len(password) * 2, 30)

    classes = _character_classes(password)
    score += 10 * sum(classes.values())

    type_count = sum(classes.values())
    if type_count >= 3:
        score += 10
    if type_count == 4:
        score += 10

    if _REPEATED.search(password):
        score -= 10
    if re.fullmatch(r"[a-zA-Z]+", password):
        score -= 10
    if re.fullmatch(r"\d+", password):
        score -= 20

    score = max(0, min(100, score))

    if score < 30:
        label = "weak"
    elif score < 50:
        label = "fair"
    elif score < 70:
        label = "good"
    elif score < 90:
        label = "strong"
    else:
        label = "excellent"

    return {"score": score, "label": label}


def validate_password(password: str, email: Optional[str] = None) -> PasswordValidation:
    """
    Check a password against every rule and collect all failures in order.

    Args:
        password: Candidate password
        email: Account email, used to reject passwords containing parts of it

    Returns:
        PasswordValidation with ``is_valid``, ``errors`` and ``strength``
    """
    errors: List[str] = []
    classes = _character_classes(password)

    if len(password) < MIN_LENGTH:
        errors.append(f"Password must be at least {MIN_LENGTH} characters long")
    if len(password) > MAX_LENGTH:
        errors.append(f"Password must not exceed {MAX_LENGTH} characters")
    if not classes["upper"]:
        errors.append("Password must contain at least one uppercase letter")
    if not classes["lower"]:
        errors.append("Password must contain at least one lowercase letter")
    if not classes["digit"]:
        errors.append("Password must contain at least one number")
    if not classes["special"]:
        errors.append(
            "Password must contain at least one special character "
            "(!@#$%^&*()_+-=[]{};':\"|,.<>/?)"
        )
    if password.lower() in COMMON_PASSWORDS:
        errors.append("This password is too common. Please choose a more unique password")
    if contains_personal_info(password, email):
        errors.append("Password should not contain parts of your email address")
    if _REPEATED.search(password):
        errors.append("Password should not contain more than 2 consecutive identical characters")
    if _SEQUENTIAL.search(password):
        errors.append("Password should not contain sequential characters (e.g., 123, abc)")

    return PasswordValidation(
        is_valid=not errors, errors=errors, strength=calculate_strength(password)
    )


def get_requirements_text() -> List[str]:
    """Human-readable requirement list for forms."""
    return [
        f"At least {MIN_LENGTH} characters long",
        "At least one uppercase letter (A-Z)",
        "At least one lowercase letter (a-z)",
        "At least one number (0-9)",
        "At least one special character (!@#$%^&*...)",
    ]
