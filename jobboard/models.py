# jobboard/models.py
from __future__ import annotations

import dataclasses
from dataclasses import dataclass
from datetime import datetime
from email.utils import parseaddr
from typing import Any, ClassVar, Union
from urllib.parse import urlsplit

JOB_KIND = "job"
ROLE_KIND = "role"
LISTING_KINDS = (JOB_KIND, ROLE_KIND)

# ---- Validation messages ----------------------------------------------------

ERR_NO_POSITION = "Must provide a Position"
ERR_NO_ORGANIZATION = "Must provide a Organization"
ERR_NO_EMAIL = "Must provide an Email Address"
ERR_INVALID_URL = "Must provide a valid Url"
ERR_INVALID_EMAIL = "Must provide a valid Email"
ERR_NO_URL_OR_DESCRIPTION = "Must provide either a Url or a Description"
ERR_NO_NAME = "Must provide a Name"
ERR_NO_ROLE = "Must provide a Role"
ERR_NO_RESUME = "Must provide a Resume"


class ValidationFailed(ValueError):
    """Submitted fields failed domain rules; `errors` maps field -> message."""

    def __init__(self, errors: dict[str, str]):
        super().__init__("; ".join(f"{k}: {v}" for k, v in sorted(errors.items())))
        self.errors = dict(errors)


# ---- Stored listings --------------------------------------------------------


@dataclass(frozen=True)
class Job:
    """
    A job posting as stored. `id`, `email` and `published_at` are fixed at
    creation; edit links are signed over them.
    """

    kind: ClassVar[str] = JOB_KIND

    id: str
    position: str
    organization: str
    url: str | None
    description: str | None
    email: str
    published_at: datetime

    @property
    def identity_fields(self) -> tuple[str, str, datetime]:
        return (self.id, self.email, self.published_at)

    def to_public_dict(self) -> dict[str, Any]:
        return {
            "id": self.id,
            "position": self.position,
            "organization": self.organization,
            "url": self.url,
            "description": self.description,
            "published_at": self.published_at.isoformat(),
        }


@dataclass(frozen=True)
class Role:
    """A person looking for a role. Same identity rules as Job."""

    kind: ClassVar[str] = ROLE_KIND

    id: str
    name: str
    email: str
    phone: str | None
    role: str
    resume: str
    linkedin: str | None
    website: str | None
    github: str | None
    comp_low: str | None
    comp_high: str | None
    published_at: datetime

    @property
    def identity_fields(self) -> tuple[str, str, datetime]:
        return (self.id, self.email, self.published_at)

    def to_public_dict(self) -> dict[str, Any]:
        return {
            "id": self.id,
            "name": self.name,
            "role": self.role,
            "resume": self.resume,
            "phone": self.phone,
            "linkedin": self.linkedin,
            "website": self.website,
            "github": self.github,
            "comp_low": self.comp_low,
            "comp_high": self.comp_high,
            "published_at": self.published_at.isoformat(),
        }


Listing = Union[Job, Role]


# ---- Updates (mutable subset only) -----------------------------------------


@dataclass(frozen=True)
class JobUpdate:
    position: str
    organization: str
    url: str | None
    description: str | None


@dataclass(frozen=True)
class RoleUpdate:
    name: str
    phone: str | None
    role: str
    resume: str
    linkedin: str | None
    website: str | None
    github: str | None
    comp_low: str | None
    comp_high: str | None


def apply_update(listing: Listing, update: JobUpdate | RoleUpdate) -> Listing:
    """
    Return a copy of `listing` with the mutable fields from `update`.
    Identity fields cannot be touched: the update types do not carry them.
    """
    if isinstance(listing, Job) and isinstance(update, JobUpdate):
        return dataclasses.replace(listing, **dataclasses.asdict(update))
    if isinstance(listing, Role) and isinstance(update, RoleUpdate):
        return dataclasses.replace(listing, **dataclasses.asdict(update))
    raise TypeError(f"Cannot apply {type(update).__name__} to {type(listing).__name__}")


# ---- Submissions (bound from HTML forms) ------------------------------------


@dataclass(frozen=True)
class NewJob:
    position: str = ""
    organization: str = ""
    url: str = ""
    description: str = ""
    email: str = ""

    def validate(self, update: bool = False) -> dict[str, str]:
        errs: dict[str, str] = {}

        if not self.position:
            errs["position"] = ERR_NO_POSITION
        if not self.organization:
            errs["organization"] = ERR_NO_ORGANIZATION

        if not self.url and not self.description:
            errs["url"] = ERR_NO_URL_OR_DESCRIPTION
        elif not self.description and not is_valid_url(self.url):
            errs["url"] = ERR_INVALID_URL

        if not update:
            _validate_email(self.email, errs)
        return errs

    def to_update(self) -> JobUpdate:
        return JobUpdate(
            position=self.position,
            organization=self.organization,
            url=optional(self.url),
            description=optional(self.description),
        )


@dataclass(frozen=True)
class NewRole:
    name: str = ""
    email: str = ""
    phone: str = ""
    role: str = ""
    resume: str = ""
    linkedin: str = ""
    website: str = ""
    github: str = ""
    comp_low: str = ""
    comp_high: str = ""

    def validate(self, update: bool = False) -> dict[str, str]:
        errs: dict[str, str] = {}

        if not self.name:
            errs["name"] = ERR_NO_NAME
        if not self.role:
            errs["role"] = ERR_NO_ROLE
        if not self.resume:
            errs["resume"] = ERR_NO_RESUME

        for field in ("linkedin", "website", "github"):
            value = getattr(self, field)
            if value and not is_valid_url(value):
                errs[field] = ERR_INVALID_URL

        if not update:
            _validate_email(self.email, errs)
        return errs

    def to_update(self) -> RoleUpdate:
        return RoleUpdate(
            name=self.name,
            phone=optional(self.phone),
            role=self.role,
            resume=self.resume,
            linkedin=optional(self.linkedin),
            website=optional(self.website),
            github=optional(self.github),
            comp_low=optional(self.comp_low),
            comp_high=optional(self.comp_high),
        )


def validated(submission: NewJob | NewRole, update: bool = False) -> NewJob | NewRole:
    """Return `submission` unchanged, or raise ValidationFailed with every field error."""
    errs = submission.validate(update=update)
    if errs:
        raise ValidationFailed(errs)
    return submission


# ---- Helpers ----------------------------------------------------------------


def optional(value: str | None) -> str | None:
    """Empty form values are stored as NULL."""
    return value if value else None


def is_valid_url(value: str) -> bool:
    parts = urlsplit(value.strip())
    return parts.scheme in ("http", "https") and bool(parts.netloc)


def is_valid_email(value: str) -> bool:
    _, addr = parseaddr(value)
    if not addr or addr != value.strip():
        return False
    local, sep, domain = addr.rpartition("@")
    return bool(sep and local and domain) and " " not in addr


def _validate_email(email: str, errs: dict[str, str]) -> None:
    if not email:
        errs["email"] = ERR_NO_EMAIL
    elif not is_valid_email(email):
        errs["email"] = ERR_INVALID_EMAIL
