# jobboard/render.py
from __future__ import annotations

from collections.abc import Mapping, Sequence
from dataclasses import dataclass
from urllib.parse import quote_plus

from .markup import esc, format_date, md_to_html
from .models import Job, Role

FieldErrors = Mapping[str, Sequence[str]]


@dataclass(frozen=True)
class FormField:
    name: str
    label: str
    required: bool = False
    textarea: bool = False
    input_type: str = "text"


JOB_FIELDS = (
    FormField("position", "Position", required=True),
    FormField("organization", "Organization", required=True),
    FormField("url", "Url", input_type="url"),
    FormField("description", "Description (markdown)", textarea=True),
)
JOB_EMAIL_FIELD = FormField("email", "Email (we send your edit link here)", required=True, input_type="email")

ROLE_FIELDS = (
    FormField("name", "Name", required=True),
    FormField("phone", "Phone", input_type="tel"),
    FormField("role", "Role wanted", required=True),
    FormField("resume", "Resume (markdown)", required=True, textarea=True),
    FormField("linkedin", "LinkedIn", input_type="url"),
    FormField("website", "Website", input_type="url"),
    FormField("github", "GitHub", input_type="url"),
    FormField("complow", "Compensation (low)"),
    FormField("comphigh", "Compensation (high)"),
)
ROLE_EMAIL_FIELD = FormField("email", "Email (we send your edit link here)", required=True, input_type="email")

# Form field name -> Role attribute where they differ
_ROLE_ATTRS = {"complow": "comp_low", "comphigh": "comp_high"}


# ---- Layout -----------------------------------------------------------------


def page(title: str, body_html: str, *, flashes: Sequence[str] = ()) -> str:
    flash_html = "".join(
        f'<div class="flash-message">{esc(msg)} <a href="#" class="btn-close">&times;</a></div>' for msg in flashes
    )
    return f"""<!doctype html>
<html lang="en">
<head>
  <meta charset="utf-8">
  <meta name="viewport" content="width=device-width, initial-scale=1">
  <title>{esc(title)} | Job Board</title>
</head>
<body>
  <header>
    <nav><a href="/">Job Board</a> | <a href="/new">Post a job</a> | <a href="/newrole">Post a role</a> | <a href="/about">About</a></nav>
  </header>
  <main>
    {flash_html}
    {body_html}
  </main>
</body>
</html>"""


# ---- Pages ------------------------------------------------------------------


def index_page(jobs: Sequence[Job], roles: Sequence[Role], *, flashes: Sequence[str] = ()) -> str:
    if jobs:
        job_rows = "".join(
            f'<li><a href="/jobs/{esc(j.id)}">{esc(j.position)}</a> at {esc(j.organization)}'
            f' <small>{esc(format_date(j.published_at))}</small></li>'
            for j in jobs
        )
        jobs_html = f"<ul>{job_rows}</ul>"
    else:
        jobs_html = "<p>No jobs posted yet.</p>"

    if roles:
        role_rows = "".join(
            f'<li><a href="/roles/{esc(r.id)}">{esc(r.name)}</a>: {esc(r.role)}'
            f' <small>{esc(format_date(r.published_at))}</small></li>'
            for r in roles
        )
        roles_html = f"<ul>{role_rows}</ul>"
    else:
        roles_html = "<p>No roles posted yet.</p>"

    body = f"<h2>Jobs</h2>\n{jobs_html}\n<h2>People looking for roles</h2>\n{roles_html}"
    return page("Home", body, flashes=flashes)


def about_page() -> str:
    body = (
        "<h2>About</h2>"
        "<p>Post a job or tell people what role you are looking for. No account needed: "
        "after posting you get an email with a private link to edit your post. "
        "Posts are removed automatically after 30 days.</p>"
    )
    return page("About", body)


def job_form_page(
    *,
    action: str,
    heading: str,
    values: Mapping[str, str | None] | None = None,
    errors: FieldErrors | None = None,
    include_email: bool = True,
    flashes: Sequence[str] = (),
    delete_action: str | None = None,
) -> str:
    fields = JOB_FIELDS + ((JOB_EMAIL_FIELD,) if include_email else ())
    body = _form(action, heading, fields, values or {}, errors or {}, delete_action=delete_action)
    return page(heading, body, flashes=flashes)


def role_form_page(
    *,
    action: str,
    heading: str,
    values: Mapping[str, str | None] | None = None,
    errors: FieldErrors | None = None,
    include_email: bool = True,
    flashes: Sequence[str] = (),
    delete_action: str | None = None,
) -> str:
    fields = ROLE_FIELDS[:1] + ((ROLE_EMAIL_FIELD,) if include_email else ()) + ROLE_FIELDS[1:]
    body = _form(action, heading, fields, values or {}, errors or {}, delete_action=delete_action)
    return page(heading, body, flashes=flashes)


def job_view_page(job: Job) -> str:
    link = f'<p><a href="{esc(job.url)}" rel="nofollow noopener">{esc(job.url)}</a></p>' if job.url else ""
    body = (
        f"<article><h2>{esc(job.position)}</h2>"
        f"<h3>{esc(job.organization)}</h3>"
        f"<p><small>Posted {esc(format_date(job.published_at))}</small></p>"
        f"{link}"
        f'<div class="description">{md_to_html(job.description)}</div></article>'
    )
    return page(job.position, body)


def role_view_page(role: Role) -> str:
    details = []
    if role.phone:
        details.append(f"<li>Phone: {esc(role.phone)}</li>")
    for label, value in (("LinkedIn", role.linkedin), ("Website", role.website), ("GitHub", role.github)):
        if value:
            details.append(f'<li>{label}: <a href="{esc(value)}" rel="nofollow noopener">{esc(value)}</a></li>')
    if role.comp_low or role.comp_high:
        details.append(f"<li>Compensation: {esc(role.comp_low or '?')} - {esc(role.comp_high or '?')}</li>")

    body = (
        f"<article><h2>{esc(role.name)}</h2>"
        f"<h3>{esc(role.role)}</h3>"
        f"<p><small>Posted {esc(format_date(role.published_at))}</small></p>"
        f"<ul>{''.join(details)}</ul>"
        f'<div class="resume">{md_to_html(role.resume)}</div></article>'
    )
    return page(role.name, body)


def admin_page(jobs: Sequence[Job], roles: Sequence[Role], *, flashes: Sequence[str] = ()) -> str:
    def row(kind: str, listing_id: str, title: str, email: str) -> str:
        return (
            f"<tr><td>{esc(title)}</td><td>{esc(email)}</td>"
            f'<td><a href="/admin/{kind}s/{esc(listing_id)}/edit">edit</a></td>'
            f'<td><form method="post" action="/admin/{kind}s/{esc(listing_id)}/delete">'
            f'<button type="submit">delete</button></form></td></tr>'
        )

    job_rows = "".join(row("job", j.id, f"{j.position} ({j.organization})", j.email) for j in jobs)
    role_rows = "".join(row("role", r.id, f"{r.name} ({r.role})", r.email) for r in roles)
    body = (
        "<h2>Admin</h2>"
        f"<h3>Jobs</h3><table>{job_rows}</table>"
        f"<h3>Roles</h3><table>{role_rows}</table>"
    )
    return page("Admin", body, flashes=flashes)


# ---- Values -----------------------------------------------------------------


def job_values(job: Job) -> dict[str, str | None]:
    return {
        "position": job.position,
        "organization": job.organization,
        "url": job.url,
        "description": job.description,
    }


def role_values(role: Role) -> dict[str, str | None]:
    values: dict[str, str | None] = {}
    for f in ROLE_FIELDS:
        values[f.name] = getattr(role, _ROLE_ATTRS.get(f.name, f.name))
    return values


def token_query(token: str) -> str:
    return f"?token={quote_plus(token)}" if token else ""


# ---- Helpers ----------------------------------------------------------------


def _form(
    action: str,
    heading: str,
    fields: Sequence[FormField],
    values: Mapping[str, str | None],
    errors: FieldErrors,
    *,
    delete_action: str | None,
) -> str:
    parts = [f"<h2>{esc(heading)}</h2>", f'<form method="post" action="{esc(action)}">']
    for f in fields:
        value = values.get(f.name) or ""
        required = " required" if f.required else ""
        parts.append(f'<label for="{f.name}">{esc(f.label)}</label>')
        if f.textarea:
            parts.append(f'<textarea id="{f.name}" name="{f.name}" rows="8"{required}>{esc(value)}</textarea>')
        else:
            parts.append(
                f'<input id="{f.name}" type="{f.input_type}" name="{f.name}" value="{esc(value)}"{required}>'
            )
        for msg in errors.get(f.name, ()):
            parts.append(f'<p class="field-error">{esc(msg)}</p>')
    parts.append('<button type="submit">Save</button></form>')
    if delete_action:
        parts.append(
            f'<form method="post" action="{esc(delete_action)}"><button type="submit">Delete</button></form>'
        )
    return "\n".join(parts)
