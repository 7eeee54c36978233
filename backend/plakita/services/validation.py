"""
Plakita Backend — Form and Code Validation
============================================

What:  Pre-flight checks for the pet/contact form and for tag codes.
Why:   Obviously invalid input is rejected before any round-trip to the store.
How:   Pure, synchronous functions. `validate_pet_form` returns a
       field → message map; an empty map is the only "valid" signal, so
       callers can show every problem at once.
Who:   ClaimService.commit, PetService.update_pet, TagAdminService.create_tag.
"""

import re
import secrets
import string
from typing import Dict, Optional

from plakita.schemas.pet import PetForm

PET_TYPES = ("dog", "cat", "bird", "rabbit", "other")

EMAIL_PATTERN = re.compile(r"^[^\s@]+@[^\s@]+\.[^\s@]+$")
PHONE_PATTERN = re.compile(r"^\+?[\d\s\-()]+$")
MIN_PHONE_DIGITS = 7
MAX_PHONE_DIGITS = 15

MIN_NAME_LENGTH = 2

TAG_CODE_PATTERN = re.compile(r"^[A-Z0-9-]+$")
MIN_TAG_CODE_LENGTH = 3
MAX_TAG_CODE_LENGTH = 20
TAG_CODE_PREFIX = "PLK-"
TAG_CODE_ALPHABET = string.ascii_uppercase + string.digits


# ══════════════════════════════════════════════════════════════════════════
# Tag Codes
# ══════════════════════════════════════════════════════════════════════════

def normalize_tag_code(raw: Optional[str]) -> str:
    """Trims and uppercases a code. normalize(normalize(c)) == normalize(c)."""
    return (raw or "").strip().upper()


def validate_tag_code(code: Optional[str]) -> Optional[str]:
    """Returns an error message for a code an admin wants to register, or None."""
    normalized = normalize_tag_code(code)
    if len(normalized) < MIN_TAG_CODE_LENGTH:
        return f"Code must be at least {MIN_TAG_CODE_LENGTH} characters"
    if len(normalized) > MAX_TAG_CODE_LENGTH:
        return f"Code cannot exceed {MAX_TAG_CODE_LENGTH} characters"
    if not TAG_CODE_PATTERN.match(normalized):
        return "Code may only contain letters, digits and hyphens"
    return None


def generate_tag_code(length: int = 6) -> str:
    """Random code such as PLK-7QX2ZD. Uniqueness is enforced by the store."""
    suffix = "".join(secrets.choice(TAG_CODE_ALPHABET) for _ in range(length))
    return f"{TAG_CODE_PREFIX}{suffix}"


# ══════════════════════════════════════════════════════════════════════════
# Contact Channels
# ══════════════════════════════════════════════════════════════════════════

def phone_digits(value: str) -> str:
    return re.sub(r"\D", "", value)


def is_email(value: str) -> bool:
    return "@" in value


def looks_like_phone(value: str) -> bool:
    return bool(PHONE_PATTERN.match(value))


def phone_error(value: str) -> Optional[str]:
    if not PHONE_PATTERN.match(value):
        return "Enter a valid phone number (digits, spaces, +, - and parentheses only)"
    digits = len(phone_digits(value))
    if digits < MIN_PHONE_DIGITS or digits > MAX_PHONE_DIGITS:
        return f"Phone number must have between {MIN_PHONE_DIGITS} and {MAX_PHONE_DIGITS} digits"
    return None


def contact_error(value: str) -> Optional[str]:
    """
    Anything with an '@' is checked as an email and phone-shaped text as a
    phone. Free text ("ask at the bakery") is accepted as is.
    """
    if is_email(value):
        if not EMAIL_PATTERN.match(value):
            return "Enter a valid email address"
        return None
    if looks_like_phone(value):
        return phone_error(value)
    return None


# ══════════════════════════════════════════════════════════════════════════
# Pet Form
# ══════════════════════════════════════════════════════════════════════════

def sanitize_pet_form(form: PetForm) -> PetForm:
    """Trims every text field and lowercases the pet type."""
    return form.model_copy(
        update={
            "name": form.name.strip(),
            "type": form.type.strip().lower(),
            "breed": form.breed.strip(),
            "owner_name": form.owner_name.strip(),
            "contact_info": form.contact_info.strip(),
            "owner_phone": form.owner_phone.strip(),
            "notes": form.notes.strip(),
        }
    )


def validate_pet_form(form: PetForm) -> Dict[str, str]:
    """
    Checks a pet form and returns field → message for every failing field.

    Rules:
        name, owner_name: at least 2 characters
        type:             one of dog, cat, bird, rabbit, other
        contact:          contact_info or owner_phone must be present;
                          contact_info is checked as email if it has an '@',
                          as phone if phone-shaped, free text otherwise;
                          owner_phone, if present, as phone
    """
    errors: Dict[str, str] = {}

    if len(form.name.strip()) < MIN_NAME_LENGTH:
        errors["name"] = f"Name must be at least {MIN_NAME_LENGTH} characters"

    if form.type.strip().lower() not in PET_TYPES:
        errors["type"] = f"Type must be one of: {', '.join(PET_TYPES)}"

    if len(form.owner_name.strip()) < MIN_NAME_LENGTH:
        errors["owner_name"] = f"Owner name must be at least {MIN_NAME_LENGTH} characters"

    contact = form.contact_info.strip()
    phone = form.owner_phone.strip()

    if not contact and not phone:
        errors["contact_info"] = "Provide at least one way to reach you: a phone number or an email"
    elif contact:
        message = contact_error(contact)
        if message:
            errors["contact_info"] = message

    if phone:
        message = phone_error(phone)
        if message:
            errors["owner_phone"] = message

    return errors
