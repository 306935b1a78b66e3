"""
Maintenance commands for the POS database.

    python -m gst_pos where
    python -m gst_pos migrate [--from pos.db]
    python -m gst_pos init [--db PATH]
    python -m gst_pos backup DEST [--db PATH]
    python -m gst_pos dump DEST_DIR [--db PATH]
    python -m gst_pos export-gst [--start YYYY-MM-DD] [--end YYYY-MM-DD] [--search TEXT] [--out FILE]

Every command prints one line and exits non-zero on failure.
"""

from __future__ import annotations

import argparse
import sys
from typing import Optional, Sequence

from .context import PosContext
from .database.db_path import DbPathResolver
from .database.repositories import InvoiceFilter, ValidationError
from .database.schema import SchemaError
from .database.versioning import get_current_version


def _cmd_where(args, resolver: DbPathResolver) -> int:
    chosen = resolver.resolve()
    print(f"database: {chosen}")
    print(f"legacy:   {resolver.legacy_path}")
    print(f"app data: {resolver.new_path}")
    return 0


def _cmd_migrate(args, resolver: DbPathResolver) -> int:
    src = args.source or resolver.legacy_path
    ok = resolver.migrate(src)
    print(f"migrated {src} -> {resolver.new_path}" if ok else f"migration from {src} failed")
    return 0 if ok else 1


def _cmd_init(args, resolver: DbPathResolver) -> int:
    with PosContext.open(args.db, resolver=resolver) as pos:
        print(f"{pos.db_path}: schema version {get_current_version(pos.conn)}")
    return 0


def _report(result) -> int:
    if result.success:
        note = " (CSV fallback)" if getattr(result, "fallback", False) else ""
        print(f"{result.path}{note}")
        return 0
    print(result.message, file=sys.stderr)
    return 1


def _cmd_backup(args, resolver: DbPathResolver) -> int:
    with PosContext.open(args.db, resolver=resolver) as pos:
        return _report(pos.backup_to(args.dest))


def _cmd_dump(args, resolver: DbPathResolver) -> int:
    with PosContext.open(args.db, resolver=resolver) as pos:
        return _report(pos.write_dump(args.dest_dir))


def _cmd_export_gst(args, resolver: DbPathResolver) -> int:
    try:
        flt = InvoiceFilter(start_date=args.start, end_date=args.end, search=args.search)
    except ValidationError as e:
        print(e.message, file=sys.stderr)
        return 2
    with PosContext.open(args.db, resolver=resolver) as pos:
        return _report(pos.export_gst_report(flt, args.out))


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(prog="gst_pos", description="GST POS database maintenance")
    sub = parser.add_subparsers(dest="command", required=True)

    p = sub.add_parser("where", help="Show which database file is in use")
    p.set_defaults(func=_cmd_where)

    p = sub.add_parser("migrate", help="Copy the legacy database into the app data folder")
    p.add_argument("--from", dest="source", help="Legacy database file (default: ./pos.db)")
    p.set_defaults(func=_cmd_migrate)

    p = sub.add_parser("init", help="Create or upgrade the schema")
    p.add_argument("--db", help="Database file (default: resolved database)")
    p.set_defaults(func=_cmd_init)

    p = sub.add_parser("backup", help="Write a consistent snapshot of the database")
    p.add_argument("dest", help="Snapshot file to create")
    p.add_argument("--db", help="Database file (default: resolved database)")
    p.set_defaults(func=_cmd_backup)

    p = sub.add_parser("dump", help="Export all data as JSON")
    p.add_argument("dest_dir", help="Folder for the dump file")
    p.add_argument("--db", help="Database file (default: resolved database)")
    p.set_defaults(func=_cmd_dump)

    p = sub.add_parser("export-gst", help="Export the GST report workbook")
    p.add_argument("--start", help="First day, YYYY-MM-DD")
    p.add_argument("--end", help="Last day, YYYY-MM-DD")
    p.add_argument("--search", help="Invoice number or customer name contains")
    p.add_argument("--out", help="Workbook path (default: ~/Downloads/gst-report-<time>.xlsx)")
    p.add_argument("--db", help="Database file (default: resolved database)")
    p.set_defaults(func=_cmd_export_gst)

    return parser


def main(argv: Optional[Sequence[str]] = None, resolver: Optional[DbPathResolver] = None) -> int:
    args = build_parser().parse_args(argv)
    try:
        return args.func(args, resolver or DbPathResolver())
    except SchemaError as e:
        print(f"Schema error: {e}", file=sys.stderr)
        return 3


if __name__ == "__main__":
    raise SystemExit(main())
