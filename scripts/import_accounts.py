#!/usr/bin/env python3
"""
Command-line import utility for the fraud database.

Loads the bundled sample accounts, queues CSV files for admin review,
approves or rejects queued uploads, and clears imported accounts.
"""

import argparse
import json
import sys
from pathlib import Path

# Add repository root to path for imports
sys.path.insert(0, str(Path(__file__).parent.parent))

from fraudcheck.core.config import get_rng, validate_config
from fraudcheck.core.normalizer import MappingError, UploadValidationError
from fraudcheck.core.resolver import clear_imported_data, import_bank_account_data
from fraudcheck.core.store import SQLiteAccountStore, StoreError
from fraudcheck.core.uploads import (
    PendingUploadQueue,
    SQLiteUploadPersistence,
    UploadNotFoundError,
    UploadStateError,
)


def build_parser():
    parser = argparse.ArgumentParser(
        description="Import bank account fraud data and review pending uploads",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Examples:
  %(prog)s seed                                  # Import the bundled sample accounts
  %(prog)s seed --company "Acme Lending"         # Credit the import to another company
  %(prog)s submit accounts.csv --company Loot    # Queue a CSV file for review
  %(prog)s list --status pending                 # Show uploads awaiting review
  %(prog)s approve upload_1700000000000_ab12cd   # Import a reviewed upload
  %(prog)s reject upload_1700000000000_ab12cd --reason "duplicate file"
  %(prog)s clear                                 # Remove imported accounts

Environment variables:
- DB_PATH=./data/fraudcheck.db
- TAG_SEED=42 (reproducible tag choice and synthetic history)
        """
    )
    parser.add_argument("--db", help="SQLite database path (default: DB_PATH)")

    subparsers = parser.add_subparsers(dest="command", required=True)

    seed = subparsers.add_parser("seed", help="Import the bundled sample accounts")
    seed.add_argument("--company", help="Company credited with the import")

    submit = subparsers.add_parser("submit", help="Queue a CSV file for admin review")
    submit.add_argument("csv_file", help="CSV file with a header row")
    submit.add_argument("--company", required=True, help="Company submitting the file")
    submit.add_argument(
        "--map", action="append", default=[], metavar="FIELD=COLUMN",
        help="Explicit column mapping, e.g. --map routingNumber=ABA"
    )

    listing = subparsers.add_parser("list", help="List uploads")
    listing.add_argument("--status", choices=["pending", "approved", "rejected"])

    approve = subparsers.add_parser("approve", help="Approve a pending upload")
    approve.add_argument("upload_id")
    approve.add_argument("--reviewer", default="admin@mybankcheck.com")

    reject = subparsers.add_parser("reject", help="Reject a pending upload")
    reject.add_argument("upload_id")
    reject.add_argument("--reviewer", default="admin@mybankcheck.com")
    reject.add_argument("--reason", default="")

    subparsers.add_parser("clear", help="Remove accounts created by imports")
    subparsers.add_parser("export", help="Print the account store envelope as JSON")

    return parser


def parse_mapping(pairs):
    mapping = {}
    for pair in pairs:
        field, sep, column = pair.partition("=")
        if not sep or not field or not column:
            raise ValueError(f"Invalid mapping '{pair}', expected FIELD=COLUMN")
        mapping[field.strip()] = column.strip()
    return mapping or None


def main(argv=None):
    parser = build_parser()
    args = parser.parse_args(argv)

    issues = validate_config()
    if issues:
        for issue in issues:
            print(f"ERROR: {issue}")
        return 1

    try:
        store = SQLiteAccountStore(args.db)
        queue = PendingUploadQueue(SQLiteUploadPersistence(args.db), store)

        if args.command == "seed":
            summary = import_bank_account_data(store, company_name=args.company, rng=get_rng())
            print(f"Import completed: {summary.imported} new accounts, {summary.updated} updated")
            print(f"Default accounts: {summary.default_count}, associated accounts: {summary.associated_count}")
            print(f"Total accounts in database: {summary.total_accounts}")

        elif args.command == "submit":
            text = Path(args.csv_file).read_text(encoding="utf-8-sig")
            upload = queue.submit_csv(args.company, text, Path(args.csv_file).name, parse_mapping(args.map))
            print(f"Upload queued for review: {upload.id} ({upload.record_count} records)")

        elif args.command == "list":
            uploads = queue.list(args.status)
            if not uploads:
                print("No uploads found")
            for upload in uploads:
                print(f"{upload.id}  {upload.status:<8}  {upload.record_count:>5}  "
                      f"{upload.company_name}  {upload.file_name}  {upload.upload_date.isoformat()}")

        elif args.command == "approve":
            summary = queue.approve(args.upload_id, reviewer=args.reviewer, rng=get_rng())
            print(f"Successfully processed {summary.processed} accounts "
                  f"({summary.default_count} default, {summary.associated_count} associated)")

        elif args.command == "reject":
            queue.reject(args.upload_id, reviewer=args.reviewer, reason=args.reason)
            print(f"Upload {args.upload_id} rejected")

        elif args.command == "clear":
            removed = clear_imported_data(store)
            print(f"Removed {removed} imported accounts")

        elif args.command == "export":
            print(json.dumps(store.export_envelope(), indent=2))

        return 0

    except (MappingError, UploadValidationError, ValueError) as e:
        print(f"ERROR: {e}")
        return 1
    except (UploadNotFoundError, UploadStateError) as e:
        print(f"ERROR: {e}")
        return 1
    except OSError as e:
        print(f"ERROR: Cannot read file: {e}")
        return 1
    except StoreError as e:
        print(f"ERROR: Database operation failed: {e}")
        return 1


if __name__ == "__main__":
    sys.exit(main())
