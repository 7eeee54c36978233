"""
Plakita Backend — Public Links
================================

What:  Builds and parses the URLs printed on QR codes and written to NFC chips.
Why:   The activation URL is the physical tag's payload, and a scanned payload
       often reaches the lookup endpoint verbatim; both directions have to
       agree on the `/activate-tag/{code}` shape.
"""

import uuid
from typing import List, Optional, Union
from urllib.parse import quote, unquote, urlsplit

from plakita.config import settings
from plakita.schemas.pet import ContactLink
from plakita.services.validation import is_email, looks_like_phone, phone_digits

ACTIVATION_SEGMENT = "activate-tag"


def activation_path(code: str) -> str:
    return f"/{ACTIVATION_SEGMENT}/{quote(code, safe='')}"


def public_profile_path(pet_id: Union[uuid.UUID, str]) -> str:
    return f"/public/pet/{pet_id}"


def build_activation_url(code: str) -> str:
    return f"{settings.public_base_url}{activation_path(code)}"


def build_public_profile_url(pet_id: Union[uuid.UUID, str]) -> str:
    return f"{settings.public_base_url}{public_profile_path(pet_id)}"


def registration_redirect(code: str) -> str:
    """Sign-up path that resumes at the tag's activation page afterwards."""
    return f"{settings.registration_path}?redirect={quote(activation_path(code), safe='')}"


def extract_tag_code_from_url(value: str) -> Optional[str]:
    """
    Returns the segment after `activate-tag` in a URL or path, or None.

        https://plakita.app/activate-tag/PLK-ABC123 → "PLK-ABC123"
        /activate-tag/PLK-ABC123?src=nfc            → "PLK-ABC123"
        PLK-ABC123                                  → None
    """
    path = urlsplit(value.strip()).path
    segments = [segment for segment in path.split("/") if segment]
    if ACTIVATION_SEGMENT not in segments:
        return None
    index = segments.index(ACTIVATION_SEGMENT)
    if index + 1 >= len(segments):
        return None
    return unquote(segments[index + 1])


def first_name(full_name: Optional[str]) -> str:
    parts = (full_name or "").split()
    return parts[0] if parts else ""


def build_contact_links(
    pet_name: str,
    contact: Optional[str],
    phone: Optional[str],
) -> List[ContactLink]:
    """
    tel:/WhatsApp links for every phone number and mailto: for an email,
    each pre-filled with a "found your pet" message. Free-text contact gets no
    link; the profile shows it as written.
    """
    links: List[ContactLink] = []
    message = f"Hi! I found {pet_name} thanks to the Plakita tag."

    phones = []
    if contact and not is_email(contact) and looks_like_phone(contact.strip()):
        phones.append(contact)
    if phone and phone not in phones:
        phones.append(phone)

    for number in phones:
        digits = phone_digits(number)
        if not digits:
            continue
        prefix = "+" if number.strip().startswith("+") else ""
        links.append(ContactLink(kind="phone", label=number, href=f"tel:{prefix}{digits}"))
        links.append(
            ContactLink(
                kind="whatsapp",
                label=number,
                href=f"https://wa.me/{digits}?text={quote(message)}",
            )
        )

    if contact and is_email(contact):
        subject = quote(f"I found {pet_name}")
        links.append(
            ContactLink(
                kind="email",
                label=contact,
                href=f"mailto:{contact}?subject={subject}&body={quote(message)}",
            )
        )

    return links
