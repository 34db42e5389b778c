"""
Run an institution CSV import (or print the CSV template) from the CLI.
"""

from __future__ import annotations

import argparse
import json
import logging
from dataclasses import asdict
from pathlib import Path

from app.domain.institution_import import ImportOptions
from app.parsers.csv_parser import CSVStructureError
from app.services.institution_import_service import build_csv_template, build_institution_import_service
from db.session import session_scope


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(description="Import medical institutions from a CSV file.")
    parser.add_argument("path", nargs="?", default=None, help="CSV file to import.")
    parser.add_argument("--template", action="store_true", help="Print the CSV template and exit.")
    parser.add_argument("--validate-only", action="store_true", help="Validate rows without writing.")
    parser.add_argument(
        "--dry-run",
        action="store_true",
        help="Validate rows and count likely duplicates without writing.",
    )
    parser.add_argument("--skip-duplicates", action="store_true", help="Leave matched institutions untouched.")
    parser.add_argument("--merge-duplicates", action="store_true", help="Merge rows into matched institutions.")
    parser.add_argument("--owner", dest="owner", default=None, help="Owner id for created institutions.")
    return parser


def main(argv: list[str] | None = None) -> int:
    parser = build_parser()
    args = parser.parse_args(argv)
    logging.basicConfig(level=logging.INFO, format="%(asctime)s %(levelname)s [%(name)s] %(message)s")

    if args.template:
        print(build_csv_template())
        return 0
    if args.path is None:
        parser.error("a CSV path is required unless --template is given")

    with session_scope() as db:
        service = build_institution_import_service(db)
        payload = Path(args.path).read_bytes()
        try:
            if args.dry_run:
                result = service.validate(payload)
            else:
                result = service.import_records(
                    payload,
                    ImportOptions(
                        validate_only=args.validate_only,
                        skip_duplicates=args.skip_duplicates,
                        merge_duplicates=args.merge_duplicates,
                        assigned_owner_id=args.owner,
                    ),
                )
        except CSVStructureError as exc:
            print(json.dumps({"error": str(exc)}, indent=2))
            return 2

    print(json.dumps(asdict(result), indent=2, default=str))
    if args.dry_run:
        return 0 if not result.errors else 1
    return 0 if result.success else 1


if __name__ == "__main__":
    raise SystemExit(main())
