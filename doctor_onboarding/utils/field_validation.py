"""
Format checks for registration fields.
Each check returns (is_valid, error_message) so callers can pick the message up directly.
"""

import re
from typing import Dict, Tuple

EMAIL_PATTERN = re.compile(r"^[^\s@]+@[^\s@]+\.[^\s@]+$")
PAN_PATTERN = re.compile(r"^[A-Z]{5}[0-9]{4}[A-Z]$")
IFSC_PATTERN = re.compile(r"^[A-Z]{4}0[A-Z0-9]{6}$")
PINCODE_PATTERN = re.compile(r"^\d{6}$")
BANK_ACCOUNT_PATTERN = re.compile(r"^\d{9,18}$")

MIN_YEAR = 1950


def digits_only(value: str) -> str:
    return re.sub(r"\D", "", value or "")


def validate_email(email: str) -> Tuple[bool, str | None]:
    if not email or not email.strip():
        return False, "Email address is required"

    if not EMAIL_PATTERN.match(email.strip()):
        return False, "Please enter a valid email address"

    return True, None


def validate_mobile_number(mobile_number: str) -> Tuple[bool, str | None]:
    """10 digits once spaces, dashes and the like are stripped."""
    if not mobile_number or not mobile_number.strip():
        return False, "Mobile number is required"

    if len(digits_only(mobile_number)) != 10:
        return False, "Please enter a valid 10-digit mobile number"

    return True, None


def validate_password(password: str) -> Tuple[bool, str | None]:
    """
    Requirements:
    - At least 8 characters
    - At least one uppercase letter, one lowercase letter and one number
    """
    if not password:
        return False, "Password is required"

    if len(password) < 8:
        return False, "Password must be at least 8 characters"

    if not (
        re.search(r"[a-z]", password)
        and re.search(r"[A-Z]", password)
        and re.search(r"\d", password)
    ):
        return False, "Password must contain uppercase, lowercase, and number"

    return True, None


def validate_aadhaar_number(aadhaar_number: str) -> Tuple[bool, str | None]:
    if not aadhaar_number or not aadhaar_number.strip():
        return False, "Aadhaar number is required"

    if len(digits_only(aadhaar_number)) != 12:
        return False, "Please enter a valid 12-digit Aadhaar number"

    return True, None


def validate_pan_number(pan_number: str) -> Tuple[bool, str | None]:
    if not pan_number or not pan_number.strip():
        return False, "PAN number is required"

    if not PAN_PATTERN.match(pan_number.strip().upper()):
        return False, "Please enter a valid PAN number"

    return True, None


def validate_ifsc_code(ifsc_code: str) -> Tuple[bool, str | None]:
    if not ifsc_code or not ifsc_code.strip():
        return False, "IFSC code is required"

    if not IFSC_PATTERN.match(ifsc_code.strip().upper()):
        return False, "Please enter a valid IFSC code"

    return True, None


def validate_bank_account_number(account_number: str) -> Tuple[bool, str | None]:
    if not account_number or not account_number.strip():
        return False, "Bank account number is required"

    if not BANK_ACCOUNT_PATTERN.match(account_number.strip()):
        return False, "Please enter a valid bank account number"

    return True, None


def validate_pincode(pincode: str) -> Tuple[bool, str | None]:
    if not PINCODE_PATTERN.match((pincode or "").strip()):
        return False, "Please enter a valid 6-digit pincode"

    return True, None


def validate_year(year: int, max_year: int, label: str) -> Tuple[bool, str | None]:
    """Year must lie within [MIN_YEAR, max_year]."""
    if not isinstance(year, int) or not MIN_YEAR <= year <= max_year:
        return False, f"{label} must be between {MIN_YEAR} and {max_year}"

    return True, None


# Document checks applied before a file is sent to storage
JPEG_TYPES = ("image/jpeg", "image/jpg")
PDF_OR_JPEG_TYPES = ("application/pdf",) + JPEG_TYPES

MB = 1024 * 1024

DOCUMENT_RULES: Dict[str, Tuple[Tuple[str, ...], int]] = {
    "profile_image": (JPEG_TYPES, 5 * MB),
    "medical_certificate": (PDF_OR_JPEG_TYPES, 10 * MB),
    "aadhaar_front": (JPEG_TYPES, 10 * MB),
    "aadhaar_back": (JPEG_TYPES, 10 * MB),
    "pan_card": (JPEG_TYPES, 10 * MB),
    "cancelled_cheque": (JPEG_TYPES, 10 * MB),
    "degree_certificate": (PDF_OR_JPEG_TYPES, 10 * MB),
}


def validate_document(
    content_type: str, size: int, document_type: str
) -> Tuple[bool, str | None]:
    """Declared content type and size against the rules for document_type."""
    allowed_types, max_size = DOCUMENT_RULES[document_type]

    if (content_type or "").lower() not in allowed_types:
        return False, f"Only {', '.join(allowed_types)} files are allowed for {document_type}"

    if size == 0:
        return False, f"File is empty for {document_type}"

    if size > max_size:
        return False, f"File size must be less than {max_size // MB}MB for {document_type}"

    return True, None
