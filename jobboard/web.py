# jobboard/web.py
from __future__ import annotations

import json
import logging
import time
from typing import Any

from fastapi import APIRouter, Depends, FastAPI, Form, Request
from fastapi.responses import HTMLResponse, JSONResponse, PlainTextResponse, RedirectResponse, Response
from starlette.middleware.sessions import SessionMiddleware

from . import render
from .auth import Forbidden, require_admin, require_token
from .config import AppConfig
from .models import JOB_KIND, ROLE_KIND, Job, NewJob, NewRole, Role, ValidationFailed, validated
from .notify import Services, announce, build_services
from .signing import signed_edit_url
from .store import ListingStore, NotFound, StorageFailure

LOG = logging.getLogger(__name__)

SESSION_MAX_AGE = 24 * 60 * 60  # 1 day
# Browsers drop cookies over ~4KB; retry values beyond this are not kept.
FORM_VALUES_BUDGET = 2048

_FLASHES = "_flashes"
_ERRORS = "_errors"
_VALUES = "_values"


# ---- App factory ------------------------------------------------------------


def create_app(
    config: AppConfig,
    store: ListingStore | None = None,
    services: Services | None = None,
) -> FastAPI:
    """
    Build the web app. `store` and `services` default to the production
    SQLite store and notification channels described by `config`.
    """
    if store is None:
        store = ListingStore(config.database_path)
    store.init_db()

    app = FastAPI(title="jobboard", docs_url=None, redoc_url=None, openapi_url=None)
    app.state.config = config
    app.state.store = store
    app.state.services = services if services is not None else build_services(config)

    app.add_middleware(
        SessionMiddleware,
        secret_key=config.app_secret,
        session_cookie="jobboard_session",
        max_age=SESSION_MAX_AGE,
        same_site="strict",
        https_only=not config.debug,
    )

    @app.middleware("http")
    async def _log_requests(request: Request, call_next):
        # Path only: the query string may carry an edit token.
        started = time.monotonic()
        response = await call_next(request)
        LOG.info(
            "%s %s -> %d (%.1fms)",
            request.method,
            request.url.path,
            response.status_code,
            (time.monotonic() - started) * 1000,
        )
        return response

    _register_error_handlers(app)
    app.include_router(_public_router())
    app.include_router(_job_owner_router())
    app.include_router(_role_owner_router())
    if config.admin_enabled:
        app.include_router(_admin_router())
    else:
        LOG.info("ADMIN_USER not set; admin panel disabled.")
    return app


def _register_error_handlers(app: FastAPI) -> None:
    @app.exception_handler(NotFound)
    async def _not_found(request: Request, exc: NotFound) -> Response:
        return PlainTextResponse("Not Found", status_code=404)

    @app.exception_handler(Forbidden)
    async def _forbidden(request: Request, exc: Forbidden) -> Response:
        return PlainTextResponse("Forbidden", status_code=403)

    @app.exception_handler(StorageFailure)
    async def _storage_failure(request: Request, exc: StorageFailure) -> Response:
        LOG.error("%s %s failed: %s", request.method, request.url.path, exc)
        return PlainTextResponse("Internal Server Error", status_code=500)


# ---- Public pages -----------------------------------------------------------


def _public_router() -> APIRouter:
    router = APIRouter()

    @router.get("/", response_class=HTMLResponse)
    def index(request: Request) -> Response:
        store = _store(request)
        jobs, roles = store.list_jobs(), store.list_roles()
        return HTMLResponse(render.index_page(jobs, roles, flashes=pop_flashes(request)))

    @router.get("/about", response_class=HTMLResponse)
    def about() -> Response:
        return HTMLResponse(render.about_page())

    @router.get("/new", response_class=HTMLResponse)
    def new_job(request: Request) -> Response:
        errors, values = pop_form_state(request)
        html = render.job_form_page(
            action="/jobs",
            heading="Post a job",
            values=values,
            errors=errors,
            flashes=pop_flashes(request),
        )
        return HTMLResponse(html)

    @router.get("/newrole", response_class=HTMLResponse)
    def new_role(request: Request) -> Response:
        errors, values = pop_form_state(request)
        html = render.role_form_page(
            action="/roles",
            heading="Post a role",
            values=values,
            errors=errors,
            flashes=pop_flashes(request),
        )
        return HTMLResponse(html)

    @router.post("/jobs")
    def create_job(
        request: Request,
        position: str = Form(""),
        organization: str = Form(""),
        url: str = Form(""),
        description: str = Form(""),
        email: str = Form(""),
    ) -> Response:
        submission = NewJob(
            position=position.strip(),
            organization=organization.strip(),
            url=url.strip(),
            description=description.strip(),
            email=email.strip(),
        )
        try:
            validated(submission)
        except ValidationFailed as e:
            keep_form_state(request, e.errors, _job_form_values(submission))
            return _redirect("/new")

        try:
            job = _store(request).create_job(submission)
        except StorageFailure:
            add_flash(request, "Error creating job")
            return _redirect("/new")

        _announce(request, job)
        add_flash(request, "Job created!")
        return _redirect("/")

    @router.post("/roles")
    def create_role(
        request: Request,
        name: str = Form(""),
        email: str = Form(""),
        phone: str = Form(""),
        role: str = Form(""),
        resume: str = Form(""),
        linkedin: str = Form(""),
        website: str = Form(""),
        github: str = Form(""),
        complow: str = Form(""),
        comphigh: str = Form(""),
    ) -> Response:
        submission = _new_role(name, email, phone, role, resume, linkedin, website, github, complow, comphigh)
        try:
            validated(submission)
        except ValidationFailed as e:
            keep_form_state(request, e.errors, _role_form_values(submission))
            return _redirect("/newrole")

        try:
            created = _store(request).create_role(submission)
        except StorageFailure:
            add_flash(request, "Error creating role")
            return _redirect("/newrole")

        _announce(request, created)
        add_flash(request, "Role created!")
        return _redirect("/")

    @router.get("/jobs/{listing_id}", response_class=HTMLResponse)
    def view_job(request: Request, listing_id: str) -> Response:
        return HTMLResponse(render.job_view_page(_store(request).get_job(listing_id)))

    @router.get("/roles/{listing_id}", response_class=HTMLResponse)
    def view_role(request: Request, listing_id: str) -> Response:
        return HTMLResponse(render.role_view_page(_store(request).get_role(listing_id)))

    @router.get("/api/jobs")
    def jobs_json(request: Request) -> Response:
        return JSONResponse({"items": [j.to_public_dict() for j in _store(request).list_jobs()]})

    @router.get("/api/roles")
    def roles_json(request: Request) -> Response:
        return JSONResponse({"items": [r.to_public_dict() for r in _store(request).list_roles()]})

    return router


# ---- Owner (token-gated) pages ----------------------------------------------


def _job_owner_router() -> APIRouter:
    router = APIRouter()
    authorized = Depends(require_token(JOB_KIND))

    @router.get("/jobs/{listing_id}/edit", response_class=HTMLResponse)
    def edit_job(request: Request, job: Job = authorized) -> Response:
        token = request.query_params.get("token", "")
        return HTMLResponse(_job_edit_form(request, job, base=f"/jobs/{job.id}", token=token))

    @router.post("/jobs/{listing_id}")
    def update_job(
        request: Request,
        job: Job = authorized,
        position: str = Form(""),
        organization: str = Form(""),
        url: str = Form(""),
        description: str = Form(""),
    ) -> Response:
        token = request.query_params.get("token", "")
        submission = NewJob(
            position=position.strip(),
            organization=organization.strip(),
            url=url.strip(),
            description=description.strip(),
        )
        return _update(
            request,
            job,
            submission,
            retry_url=f"/jobs/{job.id}/edit{render.token_query(token)}",
            done_url="/",
            form_values=_job_form_values(submission),
        )

    @router.post("/jobs/{listing_id}/delete")
    def delete_job(request: Request, job: Job = authorized) -> Response:
        _store(request).delete(JOB_KIND, job.id)
        add_flash(request, "Job deleted!")
        return _redirect("/")

    return router


def _role_owner_router() -> APIRouter:
    router = APIRouter()
    authorized = Depends(require_token(ROLE_KIND))

    @router.get("/roles/{listing_id}/edit", response_class=HTMLResponse)
    def edit_role(request: Request, role: Role = authorized) -> Response:
        token = request.query_params.get("token", "")
        return HTMLResponse(_role_edit_form(request, role, base=f"/roles/{role.id}", token=token))

    @router.post("/roles/{listing_id}")
    def update_role(
        request: Request,
        role: Role = authorized,
        name: str = Form(""),
        phone: str = Form(""),
        role_wanted: str = Form("", alias="role"),
        resume: str = Form(""),
        linkedin: str = Form(""),
        website: str = Form(""),
        github: str = Form(""),
        complow: str = Form(""),
        comphigh: str = Form(""),
    ) -> Response:
        token = request.query_params.get("token", "")
        submission = _new_role(name, "", phone, role_wanted, resume, linkedin, website, github, complow, comphigh)
        return _update(
            request,
            role,
            submission,
            retry_url=f"/roles/{role.id}/edit{render.token_query(token)}",
            done_url="/",
            form_values=_role_form_values(submission),
        )

    @router.post("/roles/{listing_id}/delete")
    def delete_role(request: Request, role: Role = authorized) -> Response:
        _store(request).delete(ROLE_KIND, role.id)
        add_flash(request, "Role deleted!")
        return _redirect("/")

    return router


# ---- Admin panel ------------------------------------------------------------


def _admin_router() -> APIRouter:
    router = APIRouter(prefix="/admin", dependencies=[Depends(require_admin)])

    @router.get("", response_class=HTMLResponse)
    def admin_index(request: Request) -> Response:
        store = _store(request)
        html = render.admin_page(store.list_jobs(), store.list_roles(), flashes=pop_flashes(request))
        return HTMLResponse(html)

    @router.get("/jobs/{listing_id}/edit", response_class=HTMLResponse)
    def admin_edit_job(request: Request, listing_id: str) -> Response:
        job = _store(request).get_job(listing_id)
        return HTMLResponse(_job_edit_form(request, job, base=f"/admin/jobs/{job.id}", token=""))

    @router.post("/jobs/{listing_id}")
    def admin_update_job(
        request: Request,
        listing_id: str,
        position: str = Form(""),
        organization: str = Form(""),
        url: str = Form(""),
        description: str = Form(""),
    ) -> Response:
        job = _store(request).get_job(listing_id)
        submission = NewJob(
            position=position.strip(),
            organization=organization.strip(),
            url=url.strip(),
            description=description.strip(),
        )
        return _update(
            request,
            job,
            submission,
            retry_url=f"/admin/jobs/{job.id}/edit",
            done_url="/admin",
            form_values=_job_form_values(submission),
        )

    @router.post("/jobs/{listing_id}/delete")
    def admin_delete_job(request: Request, listing_id: str) -> Response:
        _store(request).delete(JOB_KIND, listing_id)
        add_flash(request, "Job deleted!")
        return _redirect("/admin")

    @router.get("/roles/{listing_id}/edit", response_class=HTMLResponse)
    def admin_edit_role(request: Request, listing_id: str) -> Response:
        role = _store(request).get_role(listing_id)
        return HTMLResponse(_role_edit_form(request, role, base=f"/admin/roles/{role.id}", token=""))

    @router.post("/roles/{listing_id}")
    def admin_update_role(
        request: Request,
        listing_id: str,
        name: str = Form(""),
        phone: str = Form(""),
        role_wanted: str = Form("", alias="role"),
        resume: str = Form(""),
        linkedin: str = Form(""),
        website: str = Form(""),
        github: str = Form(""),
        complow: str = Form(""),
        comphigh: str = Form(""),
    ) -> Response:
        role = _store(request).get_role(listing_id)
        submission = _new_role(name, "", phone, role_wanted, resume, linkedin, website, github, complow, comphigh)
        return _update(
            request,
            role,
            submission,
            retry_url=f"/admin/roles/{role.id}/edit",
            done_url="/admin",
            form_values=_role_form_values(submission),
        )

    @router.post("/roles/{listing_id}/delete")
    def admin_delete_role(request: Request, listing_id: str) -> Response:
        _store(request).delete(ROLE_KIND, listing_id)
        add_flash(request, "Role deleted!")
        return _redirect("/admin")

    return router


# ---- Flash/session helpers --------------------------------------------------


def add_flash(request: Request, message: str) -> None:
    request.session.setdefault(_FLASHES, []).append(message)


def pop_flashes(request: Request) -> list[str]:
    return list(request.session.pop(_FLASHES, []))


def keep_form_state(request: Request, errors: dict[str, str], values: dict[str, str]) -> None:
    """
    Remember per-field errors and the submitted values for the next form render.
    Errors are always kept. Values are kept only while they fit the cookie
    budget, dropping the longest fields (description/resume) first.
    """
    request.session[_ERRORS] = {field: [msg] for field, msg in errors.items()}
    request.session[_VALUES] = _fit_values(values, FORM_VALUES_BUDGET)


def _fit_values(values: dict[str, str], budget: int) -> dict[str, str]:
    kept = dict(values)
    for field in sorted(values, key=lambda k: len(values[k] or ""), reverse=True):
        if len(json.dumps(kept)) <= budget:
            break
        del kept[field]
    return kept


def pop_form_state(request: Request) -> tuple[dict[str, list[str]], dict[str, str] | None]:
    return request.session.pop(_ERRORS, {}), request.session.pop(_VALUES, None)


# ---- Internal helpers -------------------------------------------------------


def _store(request: Request) -> ListingStore:
    return request.app.state.store


def _redirect(url: str) -> RedirectResponse:
    return RedirectResponse(url, status_code=302)


def _announce(request: Request, listing: Job | Role) -> None:
    config: AppConfig = request.app.state.config
    edit_url = signed_edit_url(listing, config.url, config.app_secret)
    announce(request.app.state.services, listing, edit_url)


def _update(
    request: Request,
    listing: Job | Role,
    submission: NewJob | NewRole,
    *,
    retry_url: str,
    done_url: str,
    form_values: dict[str, str],
) -> Response:
    """Shared update flow: validate, write the mutable fields, flash, redirect."""
    try:
        validated(submission, update=True)
    except ValidationFailed as e:
        keep_form_state(request, e.errors, form_values)
        return _redirect(retry_url)

    _store(request).update(listing, submission.to_update())
    add_flash(request, "Job updated!" if listing.kind == JOB_KIND else "Role updated!")
    return _redirect(done_url)


def _job_edit_form(request: Request, job: Job, *, base: str, token: str) -> str:
    errors, values = pop_form_state(request)
    query = render.token_query(token)
    return render.job_form_page(
        action=f"{base}{query}",
        heading="Edit job",
        values={**render.job_values(job), **(values or {})},
        errors=errors,
        include_email=False,
        flashes=pop_flashes(request),
        delete_action=f"{base}/delete{query}",
    )


def _role_edit_form(request: Request, role: Role, *, base: str, token: str) -> str:
    errors, values = pop_form_state(request)
    query = render.token_query(token)
    return render.role_form_page(
        action=f"{base}{query}",
        heading="Edit role",
        values={**render.role_values(role), **(values or {})},
        errors=errors,
        include_email=False,
        flashes=pop_flashes(request),
        delete_action=f"{base}/delete{query}",
    )


def _new_role(*fields: str) -> NewRole:
    name, email, phone, role, resume, linkedin, website, github, complow, comphigh = (f.strip() for f in fields)
    return NewRole(
        name=name,
        email=email,
        phone=phone,
        role=role,
        resume=resume,
        linkedin=linkedin,
        website=website,
        github=github,
        comp_low=complow,
        comp_high=comphigh,
    )


def _job_form_values(submission: NewJob) -> dict[str, Any]:
    return {
        "position": submission.position,
        "organization": submission.organization,
        "url": submission.url,
        "description": submission.description,
        "email": submission.email,
    }


def _role_form_values(submission: NewRole) -> dict[str, Any]:
    return {
        "name": submission.name,
        "email": submission.email,
        "phone": submission.phone,
        "role": submission.role,
        "resume": submission.resume,
        "linkedin": submission.linkedin,
        "website": submission.website,
        "github": submission.github,
        "complow": submission.comp_low,
        "comphigh": submission.comp_high,
    }
