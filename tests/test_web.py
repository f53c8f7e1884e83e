import re
import sqlite3
from urllib.parse import urlsplit

from fastapi.testclient import TestClient

from jobboard.notify import Services
from jobboard.signing import sign
from jobboard.web import create_app

SECRET = "sup"

JOB_FORM = {
    "position": "Pos",
    "organization": "Org",
    "url": "https://example.com/apply",
    "description": "",
    "email": "owner@example.com",
}
ROLE_FORM = {
    "name": "Ada",
    "email": "ada@example.com",
    "role": "Backend engineer",
    "resume": "Did *things*",
    "github": "https://github.com/ada",
    "complow": "100k",
    "comphigh": "",
}


def _edit_link(body):
    m = re.search(r'href="(http://testserver/(?:jobs|roles)/\d+/edit\?token=[^"]+)"', body)
    assert m, body
    return m.group(1)


# Public pages -----------------------------------------------------------------


def test_index_and_about_render(client):
    assert client.get("/").status_code == 200
    resp = client.get("/about")
    assert resp.status_code == 200
    assert "30 days" in resp.text


def test_new_job_form_has_required_fields(client):
    body = client.get("/new").text
    assert re.search(r'<input.+name="position".*required.*>', body)
    assert re.search(r'<input.+name="email".*required.*>', body)


def test_create_job_lists_it_and_emails_edit_link(client, store, services):
    resp = client.post("/jobs", data=JOB_FORM, follow_redirects=False)
    assert resp.status_code == 302
    assert resp.headers["location"] == "/"

    index = client.get("/")
    assert ">Pos</a> at Org" in index.text
    assert "Job created!" in index.text

    [job] = store.list_jobs()
    [mail] = services.email.sent
    assert mail["to"] == "owner@example.com"
    assert mail["subject"] == "Job Created!"
    assert f"/jobs/{job.id}/edit?token=" in mail["body"]
    assert services.slack.posted == [job]
    assert services.twitter.posted == [job]


def test_emailed_link_opens_edit_form(client, services):
    client.post("/jobs", data=JOB_FORM)
    link = _edit_link(services.email.sent[0]["body"]).replace("&amp;", "&")
    parts = urlsplit(link)

    resp = client.get(f"{parts.path}?{parts.query}")
    assert resp.status_code == 200
    assert re.search(r'<input.+name="position".*value="Pos".*>', resp.text)


def test_create_job_validation_failure_redirects_without_writing(client, store, services):
    form = dict(JOB_FORM, position="", url="", description="")
    resp = client.post("/jobs", data=form, follow_redirects=False)
    assert resp.status_code == 302
    assert resp.headers["location"] == "/new"
    assert store.list_jobs() == []
    assert services.email.sent == []

    page = client.get("/new").text
    assert "Must provide a Position" in page
    assert "Must provide either a Url or a Description" in page
    # Submitted values are kept for the retry
    assert 'value="Org"' in page


def test_long_failed_submission_keeps_errors_within_cookie_limit(client, store):
    form = dict(JOB_FORM, position="", description="x" * 5000)
    resp = client.post("/jobs", data=form, follow_redirects=False)
    assert resp.status_code == 302
    assert len(resp.headers["set-cookie"]) < 4096
    assert store.list_jobs() == []

    page = client.get("/new").text
    assert "Must provide a Position" in page
    assert 'value="Org"' in page
    assert "x" * 5000 not in page


def test_long_failed_update_falls_back_to_stored_values(client, store, make_job):
    job = make_job(description="Stored description")
    token = sign(job, SECRET)
    form = {"position": "", "organization": "Org", "url": "", "description": "y" * 5000}

    resp = client.post(f"/jobs/{job.id}", params={"token": token}, data=form, follow_redirects=False)
    assert len(resp.headers["set-cookie"]) < 4096

    page = client.get(resp.headers["location"]).text
    assert "Must provide a Position" in page
    assert "Stored description" in page
    assert store.get_job(job.id) == job


def test_view_job_renders_markdown_and_escapes(client, make_job):
    job = make_job(position="<script>x</script>", url="", description="**bold** text")
    body = client.get(f"/jobs/{job.id}").text
    assert "<strong>bold</strong>" in body
    assert "<script>x</script>" not in body
    assert "&lt;script&gt;" in body


def test_view_unknown_listing_is_404(client):
    assert client.get("/jobs/999").status_code == 404
    assert client.get("/roles/999").status_code == 404


def test_api_jobs_excludes_email(client, make_job):
    job = make_job()
    data = client.get("/api/jobs").json()
    assert data["items"][0]["id"] == job.id
    assert "email" not in data["items"][0]


def test_api_roles(client, make_role):
    make_role()
    [item] = client.get("/api/roles").json()["items"]
    assert item["name"] == "Ada"
    assert "email" not in item


# Token-gated job editing ------------------------------------------------------


def test_edit_with_wrong_or_missing_token_is_403(client, make_job):
    job = make_job()
    assert client.get(f"/jobs/{job.id}/edit", params={"token": "garbage"}).status_code == 403
    assert client.get(f"/jobs/{job.id}/edit").status_code == 403


def test_edit_with_valid_token_is_prefilled(client, make_job):
    job = make_job()
    resp = client.get(f"/jobs/{job.id}/edit", params={"token": sign(job, SECRET)})
    assert resp.status_code == 200
    assert re.search(r'<input.+name="position".*value="Pos".*>', resp.text)
    assert re.search(r'<input.+name="organization".*value="Org".*>', resp.text)
    assert 'name="email"' not in resp.text


def test_edit_unknown_id_is_404_not_403(client, make_job):
    job = make_job()
    resp = client.get("/jobs/999/edit", params={"token": sign(job, SECRET)})
    assert resp.status_code == 404


def test_update_job(client, store, services, make_job):
    job = make_job()
    token = sign(job, SECRET)
    form = {"position": "New Pos", "organization": "Org", "url": "", "description": "Now with text"}

    resp = client.post(f"/jobs/{job.id}", params={"token": token}, data=form, follow_redirects=False)
    assert resp.status_code == 302
    assert resp.headers["location"] == "/"

    updated = store.get_job(job.id)
    assert updated.position == "New Pos"
    assert updated.url is None
    assert updated.email == job.email
    assert "Job updated!" in client.get("/").text
    # Updates are silent
    assert services.email.sent == [] and services.slack.posted == []

    # Same link keeps working after the edit
    assert client.get(f"/jobs/{job.id}/edit", params={"token": token}).status_code == 200


def test_update_job_cannot_change_email(client, store, make_job):
    job = make_job()
    form = dict(JOB_FORM, email="attacker@example.com")
    client.post(f"/jobs/{job.id}", params={"token": sign(job, SECRET)}, data=form)
    assert store.get_job(job.id).email == "owner@example.com"


def test_update_job_validation_failure(client, store, make_job):
    job = make_job()
    token = sign(job, SECRET)
    form = {"position": "Pos", "organization": "Org", "url": "", "description": ""}

    resp = client.post(f"/jobs/{job.id}", params={"token": token}, data=form, follow_redirects=False)
    assert resp.status_code == 302
    assert resp.headers["location"].startswith(f"/jobs/{job.id}/edit?token=")
    assert store.get_job(job.id) == job

    page = client.get(resp.headers["location"]).text
    assert "Must provide either a Url or a Description" in page


def test_update_with_wrong_token_is_403_and_no_write(client, store, make_job):
    job = make_job()
    resp = client.post(f"/jobs/{job.id}", params={"token": "nope"}, data=dict(JOB_FORM, position="Hacked"))
    assert resp.status_code == 403
    assert store.get_job(job.id).position == "Pos"


def test_delete_job_with_token(client, store, make_job):
    job = make_job()
    assert client.post(f"/jobs/{job.id}/delete").status_code == 403

    resp = client.post(f"/jobs/{job.id}/delete", params={"token": sign(job, SECRET)}, follow_redirects=False)
    assert resp.status_code == 302
    assert store.list_jobs() == []


# Roles ------------------------------------------------------------------------


def test_create_role_emails_but_does_not_tweet(client, store, services):
    resp = client.post("/roles", data=ROLE_FORM, follow_redirects=False)
    assert resp.status_code == 302

    [role] = store.list_roles()
    assert role.comp_low == "100k" and role.comp_high is None
    [mail] = services.email.sent
    assert mail["subject"] == "Post Created!"
    assert f"/roles/{role.id}/edit?token=" in mail["body"]
    assert services.slack.posted == [role]
    assert services.twitter.posted == []


def test_create_role_validation_failure(client, store):
    resp = client.post("/roles", data=dict(ROLE_FORM, resume="", github="not-a-url"), follow_redirects=False)
    assert resp.headers["location"] == "/newrole"
    assert store.list_roles() == []
    page = client.get("/newrole").text
    assert "Must provide a Resume" in page
    assert "Must provide a valid Url" in page


def test_role_edit_and_update(client, store, make_role):
    role = make_role()
    token = sign(role, SECRET)

    page = client.get(f"/roles/{role.id}/edit", params={"token": token})
    assert page.status_code == 200
    assert re.search(r'<input.+name="name".*value="Ada".*>', page.text)

    form = {"name": "Ada L", "role": "CTO", "resume": "cv", "complow": "1", "comphigh": "2"}
    client.post(f"/roles/{role.id}", params={"token": token}, data=form)
    updated = store.get_role(role.id)
    assert (updated.name, updated.role, updated.comp_low, updated.comp_high) == ("Ada L", "CTO", "1", "2")


def test_job_token_does_not_open_role_with_same_id(client, make_job, make_role):
    job = make_job()
    role = make_role()
    resp = client.get(f"/roles/{role.id}/edit", params={"token": sign(job, SECRET)})
    assert resp.status_code == 403


# Admin ------------------------------------------------------------------------


def test_admin_disabled_without_credentials_configured(client):
    assert client.get("/admin").status_code == 404


def test_admin_requires_basic_auth(admin_client):
    resp = admin_client.get("/admin")
    assert resp.status_code == 401
    assert resp.headers["www-authenticate"] == "Basic"
    assert admin_client.get("/admin", auth=("admin", "wrong")).status_code == 401


def test_admin_lists_and_deletes(admin_client, store, make_job, make_role):
    job = make_job()
    make_role()
    auth = ("admin", "hunter2")

    page = admin_client.get("/admin", auth=auth)
    assert page.status_code == 200
    assert "owner@example.com" in page.text

    resp = admin_client.post(f"/admin/jobs/{job.id}/delete", auth=auth, follow_redirects=False)
    assert resp.status_code == 302
    assert resp.headers["location"] == "/admin"
    assert store.list_jobs() == []


def test_admin_edits_without_token(admin_client, store, make_job):
    job = make_job()
    auth = ("admin", "hunter2")
    assert admin_client.get(f"/admin/jobs/{job.id}/edit", auth=auth).status_code == 200

    form = {"position": "Moderated", "organization": "Org", "url": "https://example.com", "description": ""}
    admin_client.post(f"/admin/jobs/{job.id}", auth=auth, data=form)
    assert store.get_job(job.id).position == "Moderated"


# Failures ---------------------------------------------------------------------


def test_storage_failure_is_generic_500(app_config, store, services, make_job):
    job = make_job()
    with sqlite3.connect(app_config.database_path) as conn:
        conn.execute("DROP TABLE jobs")

    app = create_app(app_config, store=_NoInitStore(store), services=services)
    with TestClient(app) as c:
        resp = c.get(f"/jobs/{job.id}/edit", params={"token": sign(job, SECRET)})
    assert resp.status_code == 500
    assert resp.text == "Internal Server Error"


class _NoInitStore:
    """Wraps a store so create_app cannot recreate dropped tables."""

    def __init__(self, inner):
        self._inner = inner

    def init_db(self):
        pass

    def __getattr__(self, name):
        return getattr(self._inner, name)


def test_create_still_succeeds_when_a_channel_raises(app_config, store):
    class ExplodingSlack:
        def post(self, listing):
            raise RuntimeError("unexpected")

    app = create_app(app_config, store=store, services=Services(slack=ExplodingSlack()))
    with TestClient(app) as c:
        resp = c.post("/jobs", data=JOB_FORM, follow_redirects=False)
    assert resp.status_code == 302
    assert resp.headers["location"] == "/"
    assert len(store.list_jobs()) == 1
