# jobboard/auth.py
"""
Request gates.

Edit/update/delete routes are guarded by the listing's signed token: the
listing is resolved first (unknown id -> 404), then the token from the query
string is compared in constant time (mismatch or missing -> 403). Storage
errors propagate untouched and become a 500. Nothing is remembered between
requests.

The admin panel uses HTTP basic auth against the configured credentials.
"""

from __future__ import annotations

import logging
import secrets
from collections.abc import Callable

from fastapi import Depends, HTTPException, Request, status
from fastapi.security import HTTPBasic, HTTPBasicCredentials

from .models import Listing
from .signing import verify
from .store import ListingStore

LOG = logging.getLogger(__name__)


class Forbidden(PermissionError):
    """Token missing or wrong for an existing listing."""


def authorize(store: ListingStore, kind: str, listing_id: str, token: str | None, secret: str) -> Listing:
    """
    Resolve the listing and check the caller's token against it.

    Raises:
        NotFound: no such listing (checked before the token)
        Forbidden: token absent or not matching
        StorageFailure: backend error while resolving
    """
    listing = store.get(kind, listing_id)
    if not verify(listing, secret, token):
        LOG.info("Rejected token for %s %s", kind, listing_id)
        raise Forbidden(f"{kind} {listing_id}")
    return listing


def require_token(kind: str) -> Callable[..., Listing]:
    """FastAPI dependency: the authorized listing for `/{kind}s/{listing_id}...?token=`."""

    def _dependency(request: Request, listing_id: str, token: str = "") -> Listing:
        state = request.app.state
        return authorize(state.store, kind, listing_id, token, state.config.app_secret)

    _dependency.__name__ = f"require_{kind}_token"
    return _dependency


_basic = HTTPBasic()


def require_admin(request: Request, credentials: HTTPBasicCredentials = Depends(_basic)) -> str:
    """FastAPI dependency: HTTP basic auth for the admin panel."""
    config = request.app.state.config
    user_ok = secrets.compare_digest(credentials.username.encode("utf-8"), config.admin_user.encode("utf-8"))
    pass_ok = secrets.compare_digest(credentials.password.encode("utf-8"), config.admin_password.encode("utf-8"))
    if not (config.admin_enabled and user_ok and pass_ok):
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Unauthorized",
            headers={"WWW-Authenticate": "Basic"},
        )
    return credentials.username
