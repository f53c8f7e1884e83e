# jobboard/store.py
from __future__ import annotations

import logging
import os
import sqlite3
from collections.abc import Iterator
from contextlib import contextmanager
from datetime import datetime, timezone

from .logging_utils import now_iso, write_error_log
from .models import (
    JOB_KIND,
    ROLE_KIND,
    Job,
    JobUpdate,
    Listing,
    NewJob,
    NewRole,
    Role,
    RoleUpdate,
    apply_update,
    optional,
)

LOG = logging.getLogger(__name__)


# ---- Errors -----------------------------------------------------------------


class NotFound(LookupError):
    """No listing of that kind with that id."""

    def __init__(self, kind: str, listing_id: str):
        super().__init__(f"{kind} {listing_id!r} not found")
        self.kind = kind
        self.listing_id = listing_id


class StorageFailure(RuntimeError):
    """Unexpected backend error. Never shown to clients."""


_JOB_COLUMNS = "id, position, organization, url, description, email, published_at"
_ROLE_COLUMNS = (
    "id, name, email, phone, role, resume, linkedin, website, github, comp_low, comp_high, published_at"
)
_TABLES = {JOB_KIND: "jobs", ROLE_KIND: "roles"}


# ---- Public API -------------------------------------------------------------


class ListingStore:
    """
    CRUD access to the `jobs` and `roles` tables.

    Every call opens its own short-lived connection, so one store instance is
    safe to share between request threads and the sweeper.
    """

    def __init__(self, sqlite_path: str):
        self.sqlite_path = sqlite_path

    def init_db(self) -> None:
        """
        Ensure the SQLite database and schema exist.
        Safe to call multiple times.
        """
        _ensure_dir(self.sqlite_path)
        with self._connection("init_db") as conn:
            _ensure_schema(conn)

    # -- create ---------------------------------------------------------------

    def create_job(self, new_job: NewJob) -> Job:
        published_at = _now_utc()
        with self._connection("create_job") as conn:
            cur = conn.execute(
                """
                INSERT INTO jobs (position, organization, url, description, email, published_at)
                VALUES (?, ?, ?, ?, ?, ?)
                """,
                (
                    new_job.position,
                    new_job.organization,
                    optional(new_job.url),
                    optional(new_job.description),
                    new_job.email,
                    _format_ts(published_at),
                ),
            )
            new_id = str(cur.lastrowid)
        return self.get_job(new_id)

    def create_role(self, new_role: NewRole) -> Role:
        published_at = _now_utc()
        with self._connection("create_role") as conn:
            cur = conn.execute(
                """
                INSERT INTO roles (name, email, phone, role, resume, linkedin, website, github,
                                   comp_low, comp_high, published_at)
                VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?)
                """,
                (
                    new_role.name,
                    new_role.email,
                    optional(new_role.phone),
                    new_role.role,
                    new_role.resume,
                    optional(new_role.linkedin),
                    optional(new_role.website),
                    optional(new_role.github),
                    optional(new_role.comp_low),
                    optional(new_role.comp_high),
                    _format_ts(published_at),
                ),
            )
            new_id = str(cur.lastrowid)
        return self.get_role(new_id)

    # -- read -----------------------------------------------------------------

    def get(self, kind: str, listing_id: str) -> Listing:
        """
        Fetch one listing by kind + id.

        Raises:
            NotFound: unknown kind or id
            StorageFailure: the backend failed (not the same thing as "missing")
        """
        if kind == JOB_KIND:
            return self.get_job(listing_id)
        if kind == ROLE_KIND:
            return self.get_role(listing_id)
        raise NotFound(kind, listing_id)

    def get_job(self, listing_id: str) -> Job:
        with self._connection("get_job") as conn:
            row = conn.execute(f"SELECT {_JOB_COLUMNS} FROM jobs WHERE id = ?", (listing_id,)).fetchone()
        if row is None:
            raise NotFound(JOB_KIND, listing_id)
        return _job_from_row(row)

    def get_role(self, listing_id: str) -> Role:
        with self._connection("get_role") as conn:
            row = conn.execute(f"SELECT {_ROLE_COLUMNS} FROM roles WHERE id = ?", (listing_id,)).fetchone()
        if row is None:
            raise NotFound(ROLE_KIND, listing_id)
        return _role_from_row(row)

    def list_jobs(self) -> list[Job]:
        with self._connection("list_jobs") as conn:
            rows = conn.execute(f"SELECT {_JOB_COLUMNS} FROM jobs ORDER BY published_at DESC").fetchall()
        return [_job_from_row(r) for r in rows]

    def list_roles(self) -> list[Role]:
        with self._connection("list_roles") as conn:
            rows = conn.execute(f"SELECT {_ROLE_COLUMNS} FROM roles ORDER BY published_at DESC").fetchall()
        return [_role_from_row(r) for r in rows]

    # -- write ----------------------------------------------------------------

    def update(self, listing: Listing, update: JobUpdate | RoleUpdate) -> Listing:
        """
        Persist the mutable fields only. No version check: concurrent
        updates to the same listing are last-write-wins.
        """
        updated = apply_update(listing, update)
        with self._connection("update") as conn:
            if isinstance(updated, Job):
                conn.execute(
                    "UPDATE jobs SET position = ?, organization = ?, url = ?, description = ? WHERE id = ?",
                    (updated.position, updated.organization, updated.url, updated.description, updated.id),
                )
            else:
                conn.execute(
                    """
                    UPDATE roles SET name = ?, phone = ?, role = ?, resume = ?, linkedin = ?,
                                     website = ?, github = ?, comp_low = ?, comp_high = ?
                    WHERE id = ?
                    """,
                    (
                        updated.name,
                        updated.phone,
                        updated.role,
                        updated.resume,
                        updated.linkedin,
                        updated.website,
                        updated.github,
                        updated.comp_low,
                        updated.comp_high,
                        updated.id,
                    ),
                )
        return updated

    def delete(self, kind: str, listing_id: str) -> None:
        table = _TABLES.get(kind)
        if table is None:
            raise NotFound(kind, listing_id)
        with self._connection("delete") as conn:
            cur = conn.execute(f"DELETE FROM {table} WHERE id = ?", (listing_id,))
            deleted = cur.rowcount
        if deleted != 1:
            raise NotFound(kind, listing_id)

    def purge_expired(self, cutoff: datetime) -> dict[str, int]:
        """
        Delete every listing published before `cutoff`.
        Idempotent: rows already gone simply don't count.
        """
        ts = _format_ts(cutoff)
        counts: dict[str, int] = {}
        with self._connection("purge_expired") as conn:
            for table in _TABLES.values():
                cur = conn.execute(f"DELETE FROM {table} WHERE published_at < ?", (ts,))
                counts[table] = max(cur.rowcount, 0)
        return counts

    # -- internals ------------------------------------------------------------

    @contextmanager
    def _connection(self, op: str) -> Iterator[sqlite3.Connection]:
        """
        Open a connection inside a transaction. sqlite3 errors surface as
        StorageFailure, with a structured error record for operators.
        """
        conn: sqlite3.Connection | None = None
        try:
            conn = _connect(self.sqlite_path)
            _apply_pragmas(conn)
            with conn:
                yield conn
        except sqlite3.Error as e:
            LOG.error("Storage failure during %s: %r", op, e)
            write_error_log({
                "ts": now_iso(),
                "component": "jobboard.store",
                "op": op,
                "sqlite_path": self.sqlite_path,
                "error": repr(e),
            })
            raise StorageFailure(f"{op} failed") from e
        finally:
            if conn is not None:
                conn.close()


# ---- Internal utilities -----------------------------------------------------


def _now_utc() -> datetime:
    return datetime.now(timezone.utc)


def _format_ts(value: datetime) -> str:
    # Fixed-width UTC text so lexical order == chronological order.
    if value.tzinfo is None:
        value = value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc).isoformat(timespec="microseconds")


def _parse_ts(value: str) -> datetime:
    parsed = datetime.fromisoformat(value)
    return parsed if parsed.tzinfo else parsed.replace(tzinfo=timezone.utc)


def _job_from_row(row: sqlite3.Row) -> Job:
    return Job(
        id=str(row["id"]),
        position=row["position"],
        organization=row["organization"],
        url=row["url"],
        description=row["description"],
        email=row["email"],
        published_at=_parse_ts(row["published_at"]),
    )


def _role_from_row(row: sqlite3.Row) -> Role:
    return Role(
        id=str(row["id"]),
        name=row["name"],
        email=row["email"],
        phone=row["phone"],
        role=row["role"],
        resume=row["resume"],
        linkedin=row["linkedin"],
        website=row["website"],
        github=row["github"],
        comp_low=row["comp_low"],
        comp_high=row["comp_high"],
        published_at=_parse_ts(row["published_at"]),
    )


def _ensure_dir(sqlite_path: str) -> None:
    d = os.path.dirname(os.path.abspath(sqlite_path)) or "."
    os.makedirs(d, exist_ok=True)


def _connect(sqlite_path: str) -> sqlite3.Connection:
    conn = sqlite3.connect(sqlite_path, timeout=30.0)
    conn.row_factory = sqlite3.Row
    return conn


def _apply_pragmas(conn: sqlite3.Connection) -> None:
    conn.execute("PRAGMA journal_mode=WAL;")
    conn.execute("PRAGMA synchronous=NORMAL;")
    conn.execute("PRAGMA foreign_keys=ON;")


def _ensure_schema(conn: sqlite3.Connection) -> None:
    conn.execute(
        """
        CREATE TABLE IF NOT EXISTS jobs (
          id INTEGER PRIMARY KEY AUTOINCREMENT,
          position TEXT NOT NULL,
          organization TEXT NOT NULL,
          url TEXT NULL,
          description TEXT NULL,
          email TEXT NOT NULL,
          published_at TEXT NOT NULL
        );
        """
    )
    conn.execute(
        """
        CREATE TABLE IF NOT EXISTS roles (
          id INTEGER PRIMARY KEY AUTOINCREMENT,
          name TEXT NOT NULL,
          email TEXT NOT NULL,
          phone TEXT NULL,
          role TEXT NOT NULL,
          resume TEXT NOT NULL,
          linkedin TEXT NULL,
          website TEXT NULL,
          github TEXT NULL,
          comp_low TEXT NULL,
          comp_high TEXT NULL,
          published_at TEXT NOT NULL
        );
        """
    )
    conn.execute("CREATE INDEX IF NOT EXISTS ix_jobs_published_at ON jobs (published_at);")
    conn.execute("CREATE INDEX IF NOT EXISTS ix_roles_published_at ON roles (published_at);")
