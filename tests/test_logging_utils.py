import json
import os

from jobboard import logging_utils as L


def test_redact_scrubs_secret_keys_without_mutating():
    record = {"app_secret": "x", "nested": {"SMTP_PASSWORD": "pw", "ok": 1}, "items": [{"token": "t"}]}
    out = L.redact(record)
    assert out["app_secret"] == "***REDACTED***"
    assert out["nested"] == {"SMTP_PASSWORD": "***REDACTED***", "ok": 1}
    assert out["items"] == [{"token": "***REDACTED***"}]
    assert record["app_secret"] == "x"


def test_redact_strips_tokens_from_edit_urls():
    out = L.redact({"edit_url": "http://x/jobs/1/edit?token=abc%3D"})
    assert out["edit_url"] == "http://x/jobs/1/edit?token=***REDACTED***"


def test_activity_log_is_jsonl_with_meta(_env_defaults):
    L.write_activity_log({"event": "one"})
    L.write_activity_log({"event": "two", "secret": "s"})

    path = L.get_activity_log_path()
    assert path.startswith(_env_defaults)
    assert os.path.basename(path).startswith("activity-test-")
    with open(path, encoding="utf-8") as f:
        rows = [json.loads(line) for line in f]
    assert [r["event"] for r in rows] == ["one", "two"]
    assert rows[1]["secret"] == "***REDACTED***"
    assert set(rows[0]["_meta"]) == {"host", "pid"}
