# jobboard/notify.py
from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Protocol

import requests

from . import emailer
from .config import AppConfig, EmailConfig, TwitterConfig
from .markup import esc
from .models import Job, Listing

LOG = logging.getLogger(__name__)


class NotifyError(RuntimeError):
    """A notification channel could not deliver its message."""


# ---- Channel interfaces ------------------------------------------------------


class EmailService(Protocol):
    def notify(self, recipient: str, subject: str, body: str) -> None: ...


class SlackService(Protocol):
    def post(self, listing: Listing) -> None: ...


class TwitterService(Protocol):
    def post(self, job: Job) -> None: ...


@dataclass(frozen=True)
class Services:
    """Notification channels for the app; any of them may be absent."""

    email: EmailService | None = None
    slack: SlackService | None = None
    twitter: TwitterService | None = None


# ---- Production implementations ---------------------------------------------


class SmtpEmailService:
    def __init__(self, cfg: EmailConfig):
        self.cfg = cfg

    def notify(self, recipient: str, subject: str, body: str) -> None:
        emailer.send_html(self.cfg, subject=subject, html=body, to=[recipient])


class SlackWebhookService:
    """Posts a one-line announcement to a Slack incoming webhook."""

    def __init__(self, hook_url: str, base_url: str, timeout: float = 10.0):
        self.hook_url = hook_url
        self.base_url = base_url.rstrip("/")
        self.timeout = timeout
        self.session = requests.Session()

    def post(self, listing: Listing) -> None:
        link = f"{self.base_url}/{listing.kind}s/{listing.id}"
        if isinstance(listing, Job):
            text = f"New job posted: *{listing.position}* at *{listing.organization}*\n{link}"
        else:
            text = f"New role wanted: *{listing.name}* is looking for *{listing.role}*\n{link}"
        try:
            resp = self.session.post(self.hook_url, json={"text": text}, timeout=self.timeout)
            resp.raise_for_status()
        except requests.RequestException as e:
            raise NotifyError(f"Slack post failed: {e}") from e


class TwitterApiService:
    """Tweets new jobs via the v2 tweets endpoint with a user-context bearer token."""

    def __init__(self, cfg: TwitterConfig, base_url: str, timeout: float = 10.0):
        self.cfg = cfg
        self.base_url = base_url.rstrip("/")
        self.timeout = timeout
        self.session = requests.Session()
        self.session.headers.update({"Authorization": f"Bearer {cfg.access_token}"})

    def post(self, job: Job) -> None:
        text = f"New job: {job.position} at {job.organization} {self.base_url}/jobs/{job.id}"
        try:
            resp = self.session.post(self.cfg.api_url, json={"text": text[:280]}, timeout=self.timeout)
            resp.raise_for_status()
        except requests.RequestException as e:
            raise NotifyError(f"Tweet failed: {e}") from e


def build_services(config: AppConfig) -> Services:
    """Wire the production channels that have configuration."""
    return Services(
        email=SmtpEmailService(config.email) if config.email else None,
        slack=SlackWebhookService(config.slack_hook, config.url) if config.slack_hook else None,
        twitter=TwitterApiService(config.twitter, config.url) if config.twitter else None,
    )


# ---- Messages ----------------------------------------------------------------


def edit_link_email(listing: Listing, edit_url: str) -> tuple[str, str]:
    """Subject + HTML body handing the submitter their edit link."""
    if isinstance(listing, Job):
        subject = "Job Created!"
        what = f"job posting for the position <strong>{esc(listing.position)}</strong>"
    else:
        subject = "Post Created!"
        what = f"post for <strong>{esc(listing.name)}</strong>"

    body = f"""<!doctype html>
<html>
  <body style="font-family:Arial,sans-serif;line-height:1.5">
    <h1>{esc(subject)}</h1>
    <p>Your {what} has been created.</p>
    <p>Keep this email: the link below is the only way to edit it later.</p>
    <p><a href="{esc(edit_url)}">{esc(edit_url)}</a></p>
  </body>
</html>"""
    return subject, body


def announce(services: Services, listing: Listing, edit_url: str) -> None:
    """
    Send every notification for a newly created listing. Failures are
    logged and swallowed: the listing already exists.
    """
    if services.email is not None:
        subject, body = edit_link_email(listing, edit_url)
        _deliver("email", listing, services.email.notify, listing.email, subject, body)

    if services.slack is not None:
        _deliver("slack", listing, services.slack.post, listing)

    if services.twitter is not None and isinstance(listing, Job):
        _deliver("twitter", listing, services.twitter.post, listing)


def _deliver(channel: str, listing: Listing, send, *args) -> None:
    """Run one channel; a failure is logged and the remaining channels still run."""
    try:
        send(*args)
    except (emailer.EmailSendError, NotifyError) as e:
        LOG.error("%s notification failed for %s %s: %s", channel, listing.kind, listing.id, e)
    except Exception:
        LOG.exception("%s notification crashed for %s %s; continuing", channel, listing.kind, listing.id)
