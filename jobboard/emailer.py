# jobboard/emailer.py
from __future__ import annotations

import smtplib
import ssl
import time
from email.message import EmailMessage
from email.utils import formatdate, make_msgid

from .config import EmailConfig

# ---- Errors -----------------------------------------------------------------


class EmailSendError(RuntimeError):
    """Raised when an email cannot be delivered."""


# ---- Helpers ----------------------------------------------------------------


def _should_starttls(port: int, starttls_setting: str) -> bool:
    if starttls_setting == "true":
        return True
    if starttls_setting == "false":
        return False
    # "auto": enable STARTTLS except on the usual cleartext relay ports
    return port not in (25, 2525)


def _build_message(*, subject: str, html: str, to: list[str], from_addr: str) -> EmailMessage:
    if not subject or not subject.strip():
        raise EmailSendError("Missing subject.")
    if not html or not html.strip():
        raise EmailSendError("Missing HTML body.")
    if not to:
        raise EmailSendError("No recipients.")

    msg = EmailMessage()
    msg["From"] = from_addr
    msg["To"] = ", ".join(to)
    msg["Subject"] = subject
    msg["Date"] = formatdate(localtime=True)
    msg["Message-ID"] = make_msgid()

    msg.set_content("This message requires an HTML-capable client.")
    msg.add_alternative(html, subtype="html", charset="utf-8")
    return msg


def _send_via_smtp(msg: EmailMessage, *, rcpt_to: list[str], cfg: EmailConfig) -> None:
    context = ssl.create_default_context()
    try:
        with smtplib.SMTP(cfg.smtp_host, cfg.smtp_port, timeout=30) as server:
            server.ehlo()
            if _should_starttls(cfg.smtp_port, cfg.starttls):
                server.starttls(context=context)
                server.ehlo()
            server.login(cfg.smtp_username, cfg.smtp_password)
            server.send_message(msg, to_addrs=rcpt_to)
    except smtplib.SMTPResponseException as e:
        raise EmailSendError(f"SMTP send failed ({e.smtp_code}): {e.smtp_error!r}") from e
    except (smtplib.SMTPException, OSError) as e:
        raise EmailSendError(f"SMTP send failed: {e}") from e


def _is_transient(err: EmailSendError) -> bool:
    cause = err.__cause__
    return isinstance(cause, smtplib.SMTPResponseException) and 400 <= cause.smtp_code < 500


# ---- Public API --------------------------------------------------------------


def send_html(cfg: EmailConfig, *, subject: str, html: str, to: list[str], attempts: int = 3) -> str:
    """
    Send an HTML email.

    Returns:
        message_id (str): RFC-822 Message-ID generated by the sender.

    Raises:
        EmailSendError on any failure (connection/auth/SMTP/validation/etc).
    """
    recipients = [addr.strip() for addr in to if addr and addr.strip()]
    msg = _build_message(subject=subject, html=html, to=recipients, from_addr=cfg.from_email)

    for attempt in range(attempts):
        try:
            _send_via_smtp(msg, rcpt_to=recipients, cfg=cfg)
            return str(msg["Message-ID"])
        except EmailSendError as e:  # noqa: PERF203
            if not _is_transient(e) or attempt == attempts - 1:
                raise
            time.sleep(2**attempt)  # 1s, 2s, ...
    raise EmailSendError("Permanent send failure after retries")
