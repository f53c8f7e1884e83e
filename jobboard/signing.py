# jobboard/signing.py
"""
Capability tokens for editing a single listing.

A token is HMAC-SHA256(secret, "<kind>:<id>:<email>:<published_at>") encoded
as URL-safe base64. Nothing is stored server-side: holding the token is the
permission, for as long as the secret and the listing's identity fields stay
the same. Rotating the secret revokes every outstanding link.
"""

from __future__ import annotations

import base64
import hashlib
import hmac
from urllib.parse import quote_plus

from .models import Listing

_DELIMITER = ":"


def format_published_at(listing: Listing) -> str:
    # Same text the store persists; microseconds always present.
    return listing.published_at.isoformat(timespec="microseconds")


def canonical_string(listing: Listing) -> str:
    listing_id, email, _ = listing.identity_fields
    return _DELIMITER.join((listing.kind, listing_id, email, format_published_at(listing)))


def sign(listing: Listing, secret: str | bytes) -> str:
    key = secret.encode("utf-8") if isinstance(secret, str) else secret
    digest = hmac.new(key, canonical_string(listing).encode("utf-8"), hashlib.sha256).digest()
    return base64.urlsafe_b64encode(digest).decode("ascii")


def verify(listing: Listing, secret: str | bytes, candidate: str | None) -> bool:
    """Constant-time check of `candidate` against the expected token."""
    if not candidate:
        return False
    expected = sign(listing, secret).encode("ascii")
    return hmac.compare_digest(expected, candidate.encode("utf-8"))


def signed_edit_url(listing: Listing, base_url: str, secret: str | bytes) -> str:
    """Build `{base_url}/{kind}s/{id}/edit?token=...` for the submitter."""
    return f"{base_url.rstrip('/')}/{listing.kind}s/{listing.id}/edit?token={quote_plus(sign(listing, secret))}"
