# backend/leadverify/services/normalizer.py
"""
Comparison keys for names, companies, emails and countries.

Every place that hashes or compares a name/company goes through ``to_key`` (via
``company_key``); suppression matching breaks silently if two code paths
normalize differently.
"""
import hashlib
import re
from dataclasses import dataclass
from typing import Any, Optional

_WHITESPACE = re.compile(r"\s+")


def is_present(value: Any) -> bool:
    """True when ``value`` carries non-blank text."""
    if value is None:
        return False
    return str(value).strip() != ""


def to_key(value: Optional[str]) -> str:
    if not is_present(value):
        return ""
    return _WHITESPACE.sub(" ", str(value).strip().lower())


def company_key(value: Optional[str]) -> str:
    return to_key(value)


def country_key(value: Optional[str]) -> str:
    if not is_present(value):
        return ""
    return str(value).lower().replace(".", "").strip()


def email_lower(value: Optional[str]) -> str:
    if not is_present(value):
        return ""
    return str(value).strip().lower()


def compute_name_company_hash(first: Optional[str], last: Optional[str], company: Optional[str]) -> Optional[str]:
    """
    SHA-256 hex of ``"{first} {last}|{company}"`` over normalized keys.

    Returns None unless all three parts are present; a partial hash must never
    be stored or compared.
    """
    if not (is_present(first) and is_present(last) and is_present(company)):
        return None
    payload = f"{to_key(first)} {to_key(last)}|{company_key(company)}"
    return hashlib.sha256(payload.encode("utf-8")).hexdigest()


def split_full_name(full_name: Optional[str]):
    """'Jane van Dyke' -> ('Jane', 'van Dyke'); single tokens give no last name."""
    if not is_present(full_name):
        return None, None
    parts = str(full_name).split()
    if len(parts) == 1:
        return parts[0], None
    return parts[0], " ".join(parts[1:])


@dataclass(frozen=True)
class NormalizedKeys:
    email_lower: Optional[str]
    first_name_norm: Optional[str]
    last_name_norm: Optional[str]
    company_key: Optional[str]
    contact_country_key: Optional[str]
    name_company_hash: Optional[str]


def normalized_keys(
    email: Optional[str],
    first_name: Optional[str],
    last_name: Optional[str],
    company_name: Optional[str],
    country: Optional[str],
) -> NormalizedKeys:
    return NormalizedKeys(
        email_lower=email_lower(email) or None,
        first_name_norm=to_key(first_name) or None,
        last_name_norm=to_key(last_name) or None,
        company_key=company_key(company_name) or None,
        contact_country_key=country_key(country) or None,
        name_company_hash=compute_name_company_hash(first_name, last_name, company_name),
    )


def apply_normalized_keys(contact, company_name: Optional[str]) -> NormalizedKeys:
    """Recompute and assign every derived key on a Contact row."""
    keys = normalized_keys(contact.email, contact.first_name, contact.last_name, company_name, contact.country)
    contact.email_lower = keys.email_lower
    contact.first_name_norm = keys.first_name_norm
    contact.last_name_norm = keys.last_name_norm
    contact.company_key = keys.company_key
    contact.contact_country_key = keys.contact_country_key
    contact.name_company_hash = keys.name_company_hash
    return keys
