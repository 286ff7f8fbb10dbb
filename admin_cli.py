from __future__ import annotations

"""ratedem-admin: maintenance commands against the configured store/blob backends.

    ratedem-admin info
    ratedem-admin backup
    ratedem-admin restore
    ratedem-admin reset --scope shares
    ratedem-admin import-images --file portraits.csv
    ratedem-admin export --out ratings.xlsx
    ratedem-admin init-db --db var/ratedem.sqlite3

Backends come from the same RATEDEM_* environment variables as the server.
"""

import argparse
import json
import logging
from typing import Any, Optional, Sequence

import state
from analytics.export import export_leader_ratings
from analytics.service import RESET_SCOPES
from backup import BackupError, BackupService, BlobStoreError
from config import load_settings
from kvstore import SqliteStore
from officials.bulk import BulkImportError, import_image_overrides

logger = logging.getLogger(__name__)


def _print_json(payload: Any) -> None:
    print(json.dumps(payload, ensure_ascii=False, indent=2, sort_keys=True))


def _open_state() -> None:
    settings = load_settings()
    logging.basicConfig(level=settings.log_level, format="%(levelname)s %(name)s: %(message)s")
    state.startup_init_state(settings)
    handle = state.get_store_handle()
    if handle.fallback:
        state.shutdown_state()
        raise SystemExit(f"ERROR: store backend {handle.requested_backend!r} is unreachable")


def _require_backup() -> BackupService:
    backup = state.get_backup()
    if backup is None:
        raise SystemExit("ERROR: backups are disabled (RATEDEM_BLOB_BACKEND=none)")
    return backup


def _cmd_info(args) -> None:
    _open_state()
    try:
        _print_json(_require_backup().info())
    finally:
        state.shutdown_state()


def _cmd_backup(args) -> None:
    _open_state()
    try:
        _require_backup()
        _print_json(state.get_analytics().backup_now())
    except (BackupError, BlobStoreError) as exc:
        raise SystemExit(f"ERROR: backup failed: {exc}") from exc
    finally:
        state.shutdown_state()


def _cmd_restore(args) -> None:
    _open_state()
    try:
        _require_backup()
        _print_json(state.get_analytics().restore_backup())
    except (BackupError, BlobStoreError) as exc:
        raise SystemExit(f"ERROR: restore failed: {exc}") from exc
    finally:
        state.shutdown_state()


def _cmd_reset(args) -> None:
    _open_state()
    try:
        snapshot = state.get_analytics().reset(args.scope)
        print(f"OK: reset {args.scope} (totalRatings={snapshot['totalRatings']} totalShares={snapshot['totalShares']})")
    finally:
        state.shutdown_state()


def _cmd_import_images(args) -> None:
    _open_state()
    try:
        results = import_image_overrides(state.get_officials(), args.file, sheet_name=args.sheet)
    except BulkImportError as exc:
        raise SystemExit(f"ERROR: import failed: {exc}") from exc
    finally:
        state.shutdown_state()
    _print_json(results)
    if not all(r["success"] for r in results):
        raise SystemExit(1)


def _cmd_export(args) -> None:
    _open_state()
    try:
        n = export_leader_ratings(state.get_analytics(), args.out)
    finally:
        state.shutdown_state()
    print(f"OK: exported {n} officials to {args.out}")


def _cmd_init_db(args) -> None:
    db_path = args.db or load_settings().db_path
    with SqliteStore(db_path) as store:
        store.init_db()
    print(f"OK: initialized {db_path}")


def main(argv: Optional[Sequence[str]] = None) -> None:
    p = argparse.ArgumentParser(prog="ratedem-admin", description="RateDem analytics maintenance")
    sub = p.add_subparsers(dest="cmd", required=True)

    p_info = sub.add_parser("info", help="show backup info")
    p_info.set_defaults(func=_cmd_info)

    p_backup = sub.add_parser("backup", help="write a backup of the analytics counters")
    p_backup.set_defaults(func=_cmd_backup)

    p_restore = sub.add_parser("restore", help="replace the analytics counters with the backup")
    p_restore.set_defaults(func=_cmd_restore)

    p_reset = sub.add_parser("reset", help="zero analytics counters")
    p_reset.add_argument("--scope", choices=list(RESET_SCOPES), default="all")
    p_reset.set_defaults(func=_cmd_reset)

    p_imp = sub.add_parser("import-images", help="bulk-set image overrides from a csv/xlsx (officialId, url)")
    p_imp.add_argument("--file", required=True, help="path to .csv or .xlsx")
    p_imp.add_argument("--sheet", default=None, help="sheet name (xlsx only)")
    p_imp.set_defaults(func=_cmd_import_images)

    p_exp = sub.add_parser("export", help="export leader ratings to .csv or .xlsx")
    p_exp.add_argument("--out", required=True, help="output path")
    p_exp.set_defaults(func=_cmd_export)

    p_init = sub.add_parser("init-db", help="initialize the sqlite schema")
    p_init.add_argument("--db", default=None, help="path to sqlite db file (default: RATEDEM_DB_PATH)")
    p_init.set_defaults(func=_cmd_init_db)

    args = p.parse_args(argv)
    args.func(args)


if __name__ == "__main__":
    main()
