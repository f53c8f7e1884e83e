# jobboard/cli.py
"""
Command-line entrypoints.

Subcommands
-----------
serve
    - Starts the retention sweeper via jobboard.sweeper.start()
    - Serves the web app with uvicorn until interrupted, then stops the sweeper

sweep
    - Runs one retention pass now and prints the per-table counts

sign-url KIND ID
    - Prints the signed edit link for an existing job/role (support use)

validate-config
    - Loads/validates config and returns nonzero on error
"""

from __future__ import annotations

import argparse
import json
import logging
import sys
from collections.abc import Iterable

import uvicorn

from . import sweeper as _sweeper
from .config import AppConfig, ConfigError, load_config
from .logging_utils import configure_logging, now_iso, write_activity_log, write_error_log
from .models import LISTING_KINDS
from .signing import signed_edit_url
from .store import ListingStore, NotFound, StorageFailure
from .web import create_app

LOG = logging.getLogger("jobboard.cli")


# ------------------------------ Subcommands ----------------------------------
def cmd_serve(args: argparse.Namespace) -> int:
    """
    Run the sweeper in the background and the web app in the foreground.
    uvicorn owns SIGINT/SIGTERM; the sweeper is stopped once it returns.
    """
    try:
        cfg = _load(args)
    except ConfigError as e:
        print(f"ERROR: configuration invalid: {e}", file=sys.stderr)
        return 1

    store = ListingStore(cfg.database_path)
    controller = None
    try:
        app = create_app(cfg, store=store)
        controller = _sweeper.start(cfg, store)
        write_activity_log({"ts": now_iso(), "event": "serve_start", "host": cfg.host, "port": cfg.port})
        # access_log off: request lines would carry edit tokens in the query string.
        uvicorn.run(app, host=cfg.host, port=cfg.port, access_log=False, log_level=cfg.log_level.lower())
        write_activity_log({"ts": now_iso(), "event": "serve_stop"})
        return 0
    except KeyboardInterrupt:
        return 130
    except Exception as e:
        LOG.exception("Fatal error in serve: %s", e)
        write_error_log({"ts": now_iso(), "where": "cli.serve", "error": repr(e)})
        return 1
    finally:
        if controller is not None:
            controller.stop()
            controller.join(timeout=10.0)


def cmd_sweep(args: argparse.Namespace) -> int:
    try:
        cfg = _load(args)
        store = ListingStore(cfg.database_path)
        store.init_db()
        counts = _sweeper.sweep_once(store, cfg.retention_days)
    except KeyboardInterrupt:
        return 130
    except (ConfigError, StorageFailure) as e:
        print(f"FAILURE: {e}", file=sys.stderr)
        return 1

    write_activity_log({"ts": now_iso(), "event": "cli_sweep", "deleted": counts})
    print(json.dumps(counts, sort_keys=True))
    return 0


def cmd_sign_url(args: argparse.Namespace) -> int:
    try:
        cfg = _load(args)
        store = ListingStore(cfg.database_path)
        store.init_db()
        listing = store.get(args.kind, args.id)
    except KeyboardInterrupt:
        return 130
    except NotFound as e:
        print(f"ERROR: {e}", file=sys.stderr)
        return 1
    except (ConfigError, StorageFailure) as e:
        print(f"FAILURE: {e}", file=sys.stderr)
        return 1

    print(signed_edit_url(listing, cfg.url, cfg.app_secret))
    return 0


def cmd_validate_config(args: argparse.Namespace) -> int:
    try:
        _load(args)
    except KeyboardInterrupt:
        return 130
    except ConfigError as e:
        LOG.error("Configuration validation failed: %s", e)
        print(f"ERROR: configuration invalid: {e}", file=sys.stderr)
        return 1
    print("OK: configuration is valid.")
    return 0


def _load(args: argparse.Namespace) -> AppConfig:
    cfg = load_config(args.config)
    logging.getLogger().setLevel(getattr(logging, cfg.log_level.upper(), logging.INFO))
    return cfg


# ------------------------------- Argparse ------------------------------------
def _build_parser() -> argparse.ArgumentParser:
    p = argparse.ArgumentParser(
        prog="jobboard",
        description="Job board service command-line tools",
    )
    p.add_argument(
        "--config",
        help="Path to a YAML/JSON config file (fallbacks to CONFIG_PATH env; env vars override).",
    )
    sub = p.add_subparsers(dest="cmd", required=True)

    sp = sub.add_parser("serve", help="Run the web app and the retention sweeper.")
    sp.set_defaults(func=cmd_serve)

    sp = sub.add_parser("sweep", help="Delete expired listings once and exit.")
    sp.set_defaults(func=cmd_sweep)

    sp = sub.add_parser("sign-url", help="Print the signed edit link for a listing.")
    sp.add_argument("kind", choices=LISTING_KINDS, help="Listing kind.")
    sp.add_argument("id", help="Listing id.")
    sp.set_defaults(func=cmd_sign_url)

    sp = sub.add_parser("validate-config", help="Verify configuration correctness.")
    sp.set_defaults(func=cmd_validate_config)

    return p


# --------------------------------- Main --------------------------------------
def main(argv: Iterable[str] | None = None) -> int:
    configure_logging()
    parser = _build_parser()
    args = parser.parse_args(args=list(argv) if argv is not None else None)
    return args.func(args)


if __name__ == "__main__":  # pragma: no cover
    sys.exit(main())
