# jobboard/sweeper.py
from __future__ import annotations

import logging
import threading
import time as _time
from datetime import datetime, timedelta, timezone

import pytz
from apscheduler.executors.pool import ThreadPoolExecutor
from apscheduler.jobstores.memory import MemoryJobStore
from apscheduler.schedulers.background import BackgroundScheduler
from apscheduler.triggers.interval import IntervalTrigger

from .config import AppConfig
from .logging_utils import now_iso, write_activity_log, write_error_log
from .store import ListingStore

LOG = logging.getLogger(__name__)

SWEEP_JOB_ID = "retention-sweep"
DEFAULT_RETENTION_DAYS = 30


# ---- Public controller ------------------------------------------------------


class SweeperController:
    """
    A small façade around APScheduler so the CLI can manage lifecycle cleanly.
    """

    def __init__(self, scheduler: BackgroundScheduler) -> None:
        self._scheduler = scheduler
        self._stopped_evt = threading.Event()

    @property
    def scheduler(self) -> BackgroundScheduler:
        return self._scheduler

    def stop(self) -> None:
        if self._scheduler.running:
            LOG.info("Shutting down sweeper...")
            # wait=False -> stop immediately; an in-flight pass is allowed to finish.
            self._scheduler.shutdown(wait=False)
        self._stopped_evt.set()

    def join(self, timeout: float | None = None) -> bool:
        """
        Block until the sweeper is fully stopped (or timeout).
        Returns True if stopped before timeout, else False.
        """
        return self._stopped_evt.wait(timeout=timeout)


# ---- Module API -------------------------------------------------------------


def sweep_once(
    store: ListingStore,
    retention_days: int = DEFAULT_RETENTION_DAYS,
    now: datetime | None = None,
) -> dict[str, int]:
    """Delete every listing published more than `retention_days` ago."""
    current = now or datetime.now(timezone.utc)
    cutoff = current - timedelta(days=retention_days)
    counts = store.purge_expired(cutoff)
    LOG.info("Retention sweep removed %s (cutoff=%s)", counts, cutoff.isoformat())
    return counts


def start(config: AppConfig, store: ListingStore, *, run_now: bool = True) -> SweeperController:
    """
    Build a BackgroundScheduler with the hourly retention job and start it.
    The first pass runs immediately unless `run_now` is False.
    """
    tz = _resolve_timezone(config.timezone)
    scheduler = BackgroundScheduler(
        timezone=tz,
        job_defaults={"coalesce": True, "max_instances": 1},
        executors={"default": ThreadPoolExecutor(1)},
        jobstores={"default": MemoryJobStore()},
    )

    job_kwargs = {}
    if run_now:
        job_kwargs["next_run_time"] = datetime.now(tz)

    scheduler.add_job(
        func=_job_wrapper,
        args=(store, config.retention_days),
        trigger=IntervalTrigger(hours=config.sweep_interval_hours, timezone=tz),
        id=SWEEP_JOB_ID,
        replace_existing=True,
        **job_kwargs,
    )
    scheduler.start()
    LOG.info(
        "Sweeper started (every %dh, retention %d days).",
        config.sweep_interval_hours,
        config.retention_days,
    )
    return SweeperController(scheduler)


# ---- Helpers ----------------------------------------------------------------


def _job_wrapper(store: ListingStore, retention_days: int) -> None:
    """
    One scheduled pass. Never raises: a failed pass is logged and the next
    interval simply tries again.
    """
    started = _time.monotonic()
    try:
        counts = sweep_once(store, retention_days)
    except Exception as e:
        LOG.exception("Retention sweep failed.")
        _write_record(write_error_log, status="error", started=started, error=repr(e))
        return
    _write_record(write_activity_log, status="ok", started=started, deleted=counts)


def _write_record(writer, *, status: str, started: float, **fields) -> None:
    """Best-effort structured log; non-fatal on errors."""
    try:
        writer({
            "ts": now_iso(),
            "source": "sweeper",
            "event": "retention_sweep",
            "fields": {
                "job_id": SWEEP_JOB_ID,
                "status": status,
                "duration_ms": int((_time.monotonic() - started) * 1000),
                **fields,
            },
        })
    except Exception:
        LOG.debug("structured log write failed for %s", SWEEP_JOB_ID, exc_info=True)


def _resolve_timezone(tz_name: str):
    """APScheduler 3.x expects a pytz timezone; fall back to UTC."""
    try:
        return pytz.timezone(tz_name or "UTC")
    except pytz.UnknownTimeZoneError:
        LOG.warning("Falling back to UTC timezone (invalid tz '%s')", tz_name)
        return pytz.UTC
