"""Explicit sensitivity markers and sensitive-name categories.

Markers are the only source of *declared* tiers:

- comments: ``# @sensitivity: restricted``, ``// @sensitivity: internal``
- keyword/dict style: ``info={"sensitivity": "restricted"}``, ``sensitivity="confidential"``
- Java: ``@Sensitive("restricted")``, ``@Sensitive(Tier.RESTRICTED)``, ``@Restricted``, ``@Confidential``
- C#: ``[PersonalData]`` (confidential), ``[ProtectedPersonalData]`` (restricted), ``[Sensitive("...")]``
- PHP: ``#[Sensitive('restricted')]``, docblock ``@sensitive restricted``

Name categories (pii, credentials, financial, health) are informational: they
explain *why* a field looks sensitive but never assign a tier.
"""

import re

from driftscan.boundaries.types import TIERS

TIER_ALIASES = {
    "secret": "restricted",
    "critical": "restricted",
    "highly_confidential": "restricted",
    "sensitive": "confidential",
    "private": "confidential",
    "pii": "confidential",
    "protected": "confidential",
    "open": "public",
    "none": "public",
}

_TIER_WORD = r"[\"']?(?:\w+\.)?(\w+)[\"']?"

MARKER_PATTERNS: list[tuple[str, re.Pattern[str]]] = [
    ("comment", re.compile(r"@sensitivity\s*[:=]?\s*" + _TIER_WORD, re.IGNORECASE)),
    ("attribute", re.compile(r"\[\s*ProtectedPersonalData\s*(?:\(\s*\))?\s*\]")),
    ("attribute", re.compile(r"\[\s*PersonalData\s*(?:\(\s*\))?\s*\]")),
    ("attribute", re.compile(r"#\[\s*Sensitive\s*\(\s*(?:tier\s*:\s*)?" + _TIER_WORD, re.IGNORECASE)),
    ("attribute", re.compile(r"\[\s*Sensitive\s*\(\s*(?:Tier\s*=\s*)?" + _TIER_WORD)),
    ("annotation", re.compile(r"@Sensitive\s*\(\s*(?:(?:value|tier)\s*=\s*)?" + _TIER_WORD)),
    ("annotation", re.compile(r"@(Restricted|Confidential)\b")),
    ("docblock", re.compile(r"@sensitive\s+(\w+)", re.IGNORECASE)),
    ("keyword", re.compile(r"[\"']?sensitivity[\"']?\s*[:=]>?\s*" + _TIER_WORD, re.IGNORECASE)),
]

_FIXED_TIERS = {"ProtectedPersonalData": "restricted", "PersonalData": "confidential"}

# Lines that may carry a marker for the declaration below them
_MARKER_LINE = re.compile(r"^\s*(#|//|/\*|\*|@|\[|\"\"\"|''')")


def normalize_tier(value: str | None) -> str | None:
    """Canonical tier for a marker value, or None if it names no tier."""
    if not value:
        return None
    lowered = value.strip().strip("\"'").lower()
    if lowered in TIERS:
        return lowered
    return TIER_ALIASES.get(lowered)


def marker_in_text(text: str) -> tuple[str, str] | None:
    """(tier, marker kind) for the first recognizable marker in ``text``."""
    for kind, pattern in MARKER_PATTERNS:
        match = pattern.search(text)
        if not match:
            continue
        literal = match.group(0)
        for name, tier in _FIXED_TIERS.items():
            if re.search(rf"\[\s*{name}\b", literal):
                return tier, kind
        tier = normalize_tier(match.group(1)) if match.groups() else None
        if tier:
            return tier, kind
    return None


def find_marker(lines: list[str], index: int, lookback: int = 6) -> tuple[str, str] | None:
    """
    Marker attached to the declaration on ``lines[index]`` (0-based).

    Looks at the line itself, then walks upward over annotation, attribute,
    decorator and comment lines, stopping at the first blank or code line.
    """
    if not 0 <= index < len(lines):
        return None
    found = marker_in_text(lines[index])
    if found:
        return found
    for offset in range(1, lookback + 1):
        i = index - offset
        if i < 0:
            break
        line = lines[i]
        if not line.strip() or not _MARKER_LINE.match(line):
            break
        found = marker_in_text(line)
        if found:
            return found
    return None


# --- Name categories ------------------------------------------------------

CATEGORY_PATTERNS: list[tuple[str, list[str], re.Pattern[str]]] = [
    ("credentials", ["pci-dss", "gdpr", "sox"], re.compile(
        r"^(password|passwd|pwd|secret|token|jwt)$|password_?hash|hashed_?password|pass_?phrase"
        r"|api_?(key|secret)|secret_?key|access_?key|private_?key|(auth|access|refresh|session|bearer)_?token"
        r"|client_?secret|(encryption|signing|master)_?key|(mfa|totp|two_?factor)_?secret"
        r"|(recovery|backup)_?code")),
    ("financial", ["pci-dss", "glba", "gdpr"], re.compile(
        r"credit_?card|card_?number|cc_?number|^pan$|^(cvv|cvc|cvv2)$|card_?verification"
        r"|bank_?account|account_?number|routing_?number|^iban$|swift_?code|^bic$"
        r"|^(salary|income|wage)$|hourly_?rate|compensation|net_?worth|tax_?return|pay_?rate|payroll")),
    ("health", ["hipaa", "gdpr"], re.compile(
        r"diagnosis|medical|health_?(condition|record)|disease|prescription|medication"
        r"|treatment|allerg|blood_?type|insurance_?(id|number)")),
    ("pii", ["gdpr", "ccpa"], re.compile(
        r"^ssn$|social_?security|national_?(id|insurance)|tax_?id|passport_?number|driver_?licen[cs]e"
        r"|date_?of_?birth|^dob$|birth_?date|birthday|^e_?mail$|email_?address|phone_?number"
        r"|mobile_?number|cell_?phone|telephone|^address$|(street|home|mailing|postal)_?address"
        r"|^ip_?address$|(client|user)_?ip|biometric|fingerprint|face_?id|^race$|ethnicity|religion"
        r"|sexual_?orientation|gender_?identity|first_?name|last_?name|full_?name")),
]

# UI/bookkeeping columns that are never security relevant
NOISE_FIELDS = re.compile(
    r"^(color|theme|font\w*|size|width|height|position|layout|display|visible|enabled|active"
    r"|created_at|updated_at|deleted_at|version|sort_order|order|index)$"
)


def normalize_name(name: str) -> str:
    """camelCase/PascalCase/kebab-case to lower snake_case."""
    snake = re.sub(r"(?<=[a-z0-9])([A-Z])", r"_\1", name)
    snake = re.sub(r"([A-Z]+)([A-Z][a-z])", r"\1_\2", snake)
    return re.sub(r"[\s\-]+", "_", snake).lower().strip("_")


def classify_name(name: str) -> tuple[str, list[str]] | None:
    """(category, regulations) for a field name that looks sensitive, else None."""
    normalized = normalize_name(name)
    if NOISE_FIELDS.match(normalized):
        return None
    for category, regulations, pattern in CATEGORY_PATTERNS:
        if pattern.search(normalized):
            return category, list(regulations)
    return None
