"""Identity normalization and one-way hashing.

Turns a :class:`UserIdentity` into a privacy-safe :class:`HashedIdentity`
bundle suitable for Google Enhanced Conversions and the Meta Conversions
API. Each field is canonicalized, then digested with SHA-256 into a
64-character lowercase hex string.

Examples:
    >>> sha256_hex("  Jane@Example.COM ") == sha256_hex("jane@example.com")
    True
    >>> digest = sha256_hex("jane@example.com")
    >>> sha256_hex(digest) == digest
    True
    >>> normalize_phone("(555) 123-4567")
    '+15551234567'
    >>> normalize_phone("12345") is None
    True
"""

from __future__ import annotations

import asyncio
import hashlib
import logging
import re
from collections.abc import Callable
from dataclasses import dataclass
from typing import Any

from windowman.tracking.exceptions import IdentityHashingError
from windowman.tracking.schema import UserIdentity

logger = logging.getLogger(__name__)

# Shape of a digest produced by this module. A legitimate PII value with the
# same shape is indistinguishable from a digest and passes through unchanged.
SHA256_PATTERN = re.compile(r"^[a-f0-9]{64}$")

# US ZIP+4, truncated to the five-digit ZIP before hashing
ZIP_PLUS_FOUR_PATTERN = re.compile(r"^(\d{5})-\d{4}$")

# E.164 allows at most 15 digits after the country code prefix
E164_MAX_DIGITS = 15


def is_sha256(value: Any) -> bool:
    """Check whether a value already has the shape of a SHA-256 hex digest."""
    if not isinstance(value, str):
        return False
    return bool(SHA256_PATTERN.match(value.strip().lower()))


def sha256_hex(value: str) -> str:
    """Trim, lowercase and digest a value.

    Values that already look like a digest are returned (lowercased)
    without being hashed again, so identity data can flow through the
    pipeline more than once per session.

    Args:
        value: The raw or already-normalized value.

    Returns:
        64-character lowercase hex digest.

    Raises:
        IdentityHashingError: If the value cannot be encoded for hashing.
    """
    normalized = value.strip().lower()
    if SHA256_PATTERN.match(normalized):
        return normalized
    try:
        return hashlib.sha256(normalized.encode("utf-8")).hexdigest()
    except UnicodeEncodeError as e:
        raise IdentityHashingError(f"Cannot encode value for hashing: {e}") from e


def _clean(value: Any) -> str:
    if isinstance(value, str):
        return value.strip().lower()
    return ""


def normalize_email(email: Any) -> str | None:
    """Normalize an email address to lowercase without surrounding whitespace."""
    return _clean(email) or None


def normalize_phone(phone: Any) -> str | None:
    """Normalize a phone number to E.164.

    US numbers are accepted as 10 digits, or 11 digits with a leading 1.
    Numbers written with an explicit ``+`` keep their country code when
    they have between 11 and 15 digits. Anything else is unparseable and
    returns None so it is dropped rather than hashed.

    Examples:
        >>> normalize_phone("555-123-4567")
        '+15551234567'
        >>> normalize_phone("1-555-123-4567")
        '+15551234567'
        >>> normalize_phone("+44 7911 123456")
        '+447911123456'
        >>> normalize_phone("123456789012") is None
        True
    """
    if not isinstance(phone, str):
        return None

    raw = phone.strip()
    digits = re.sub(r"\D", "", raw)

    if raw.startswith("+"):
        if 11 <= len(digits) <= E164_MAX_DIGITS:
            return f"+{digits}"
        if len(digits) == 10:
            return f"+1{digits}"
        return None

    if len(digits) == 10:
        return f"+1{digits}"
    if len(digits) == 11 and digits.startswith("1"):
        return f"+{digits}"
    return None


def normalize_name(name: Any) -> str | None:
    """Normalize a first or last name."""
    return _clean(name) or None


def normalize_city(city: Any) -> str | None:
    """Normalize a city name: lowercase with inner whitespace removed."""
    cleaned = re.sub(r"\s+", "", _clean(city))
    return cleaned or None


def normalize_state(state: Any) -> str | None:
    """Normalize a state or region code."""
    return _clean(state) or None


def normalize_zip(zip_code: Any) -> str | None:
    """Normalize a postal code, truncating US ZIP+4 to five digits."""
    cleaned = _clean(zip_code)
    match = ZIP_PLUS_FOUR_PATTERN.match(cleaned)
    if match:
        return match.group(1)
    return cleaned or None


@dataclass
class HashedIdentity:
    """
    Privacy-safe identity bundle.

    Digest fields hold SHA-256 hex strings. ``external_id``, ``fbp`` and
    ``fbc`` are opaque identifiers and are never hashed.

    Two downstream consumers read different key names for the same
    digest, so :meth:`to_dict` exposes each digest twice: once under the
    Google Enhanced Conversions name and once under the Meta CAPI name.
    """

    email: str | None = None
    phone: str | None = None
    first_name: str | None = None
    last_name: str | None = None
    city: str | None = None
    state: str | None = None
    zip_code: str | None = None

    external_id: str | None = None
    fbp: str | None = None
    fbc: str | None = None

    # (attribute, google key, meta key)
    KEY_MAP = (
        ("email", "sha256_email_address", "em"),
        ("phone", "sha256_phone_number", "ph"),
        ("first_name", "sha256_first_name", "fn"),
        ("last_name", "sha256_last_name", "ln"),
        ("city", "sha256_city", "ct"),
        ("state", "sha256_region", "st"),
        ("zip_code", "sha256_postal_code", "zp"),
    )

    @property
    def has_digests(self) -> bool:
        """True when at least one PII digest is present."""
        return any(getattr(self, attr) for attr, _, _ in self.KEY_MAP)

    @property
    def has_cookies(self) -> bool:
        """True when a cross-session identifier is present."""
        return bool(self.fbp or self.fbc)

    def to_dict(self) -> dict[str, str]:
        """Serialize to the ``user_data`` wire shape."""
        data: dict[str, str] = {}
        for attr, google_key, meta_key in self.KEY_MAP:
            digest = getattr(self, attr)
            if digest:
                data[google_key] = digest
                data[meta_key] = digest
        if self.external_id:
            data["external_id"] = self.external_id
        if self.fbp:
            data["fbp"] = self.fbp
        if self.fbc:
            data["fbc"] = self.fbc
        return data


# (identity attribute, normalizer)
_FIELD_NORMALIZERS: tuple[tuple[str, Callable[[Any], str | None]], ...] = (
    ("email", normalize_email),
    ("phone", normalize_phone),
    ("first_name", normalize_name),
    ("last_name", normalize_name),
    ("city", normalize_city),
    ("state", normalize_state),
    ("zip_code", normalize_zip),
)


def _digest_field(attr: str, raw: Any, normalizer: Callable[[Any], str | None]) -> str | None:
    # Digests pass through before field-specific parsing, which would
    # otherwise reject them (a hashed phone has no dialable digits).
    if is_sha256(raw):
        return raw.strip().lower()

    normalized = normalizer(raw)
    if normalized is None:
        return None

    try:
        return sha256_hex(normalized)
    except IdentityHashingError as e:
        logger.debug(f"Dropping {attr} from identity bundle: {e}")
        return None


def hash_identity(identity: UserIdentity) -> HashedIdentity | None:
    """Normalize and hash every PII field of an identity.

    Empty, malformed or unencodable fields are omitted; this function does
    not raise for bad input.

    Args:
        identity: The caller-supplied identity.

    Returns:
        The hashed bundle, or None when no digest was produced and no
        cross-session identifier is available.
    """
    bundle = HashedIdentity(
        external_id=identity.lead_id or None,
        fbp=identity.fbp or None,
        fbc=identity.fbc or None,
    )

    for attr, normalizer in _FIELD_NORMALIZERS:
        setattr(bundle, attr, _digest_field(attr, getattr(identity, attr), normalizer))

    if not bundle.has_digests and not bundle.has_cookies:
        return None
    return bundle


async def hash_identity_async(identity: UserIdentity) -> HashedIdentity | None:
    """Run :func:`hash_identity` off the event loop."""
    return await asyncio.to_thread(hash_identity, identity)
