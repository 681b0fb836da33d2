"""Shared validation utilities"""

import re
from typing import Optional

from ..models import GENDERS

# Basic address shape: something@something.tld, no whitespace
EMAIL_PATTERN = re.compile(r"^[^\s@]+@[^\s@]+\.[^\s@]+$")

MIN_PHONE_LENGTH = 10


def clean_text(value: Optional[str]) -> Optional[str]:
    """Trim a string; blank strings become None"""
    if value is None:
        return None
    value = value.strip()
    return value or None


def validate_email(email: Optional[str]) -> Optional[str]:
    """
    Validate email format.

    Returns:
        Trimmed, lowercase email address

    Raises:
        ValueError: If email format is invalid
    """
    if not email:
        return email

    email = email.strip().lower()

    if not EMAIL_PATTERN.match(email):
        raise ValueError("Please provide a valid email address")

    return email


def validate_phone(phone: Optional[str]) -> Optional[str]:
    """
    Validate a contact phone number.

    Numbers are kept as entered (trimmed); the clinic serves callers from
    several countries so no E.164 rewriting happens here.

    Raises:
        ValueError: If the number is shorter than 10 characters
    """
    if not phone:
        return phone

    phone = phone.strip()
    if len(phone) < MIN_PHONE_LENGTH:
        raise ValueError(f"Phone number must be at least {MIN_PHONE_LENGTH} characters")

    return phone


def validate_age(age: Optional[int]) -> Optional[int]:
    if age is None:
        return None
    if age < 1 or age > 150:
        raise ValueError("Age must be a number between 1 and 150")
    return age


def validate_gender(gender: Optional[str]) -> Optional[str]:
    gender = clean_text(gender)
    if gender is None:
        return None
    # Accept any casing from forms, store the canonical spelling
    for allowed in GENDERS:
        if gender.lower() == allowed.lower():
            return allowed
    raise ValueError(f"Gender must be one of: {', '.join(GENDERS)}")
