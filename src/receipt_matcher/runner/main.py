"""
CLI main entry point.
"""

import argparse
import json
import logging
import sys
from datetime import date, datetime
from decimal import Decimal, InvalidOperation
from pathlib import Path

from ..config import Config, load_config
from ..extractors import ReceiptExtractor
from ..ocr_client import OCRClient, OCRError, read_text_file
from ..schemas import SourceKind
from ..services import AutoMatchService, ReceiptIngestionService
from ..state_store import StateStore, StateStoreError

logger = logging.getLogger(__name__)


def setup_logging(verbose: bool = False) -> None:
    """Configure logging."""
    level = logging.DEBUG if verbose else logging.INFO
    logging.basicConfig(
        level=level,
        format="%(asctime)s | %(levelname)-8s | %(name)s | %(message)s",
        datefmt="%Y-%m-%d %H:%M:%S",
    )


def _iso_date(value: str) -> date:
    try:
        return datetime.strptime(value, "%Y-%m-%d").date()
    except ValueError:
        raise argparse.ArgumentTypeError(f"invalid date {value!r} (expected YYYY-MM-DD)")


def _decimal(value: str) -> Decimal:
    try:
        return Decimal(value)
    except InvalidOperation:
        raise argparse.ArgumentTypeError(f"invalid amount {value!r}")


def create_cli() -> argparse.ArgumentParser:
    """Create CLI argument parser."""
    parser = argparse.ArgumentParser(
        prog="receipt-matcher",
        description="Extract receipt fields and match receipts to ledger transactions",
    )

    parser.add_argument(
        "-c",
        "--config",
        type=Path,
        default=Path("config.yaml"),
        help="Path to config file (default: config.yaml)",
    )
    parser.add_argument(
        "-v",
        "--verbose",
        action="store_true",
        help="Enable verbose logging",
    )

    subparsers = parser.add_subparsers(dest="command", help="Command to run")
    kinds = [k.value for k in SourceKind]

    # extract command
    extract_parser = subparsers.add_parser(
        "extract", help="Extract fields from a text file and print them as JSON"
    )
    extract_parser.add_argument("file", type=Path, help="File with OCR/PDF text")
    extract_parser.add_argument(
        "--kind", choices=kinds, default=SourceKind.DOCUMENT.value, help="Text source kind"
    )

    # ingest command
    ingest_parser = subparsers.add_parser(
        "ingest", help="Store a receipt, extract its fields and try an auto-match"
    )
    source = ingest_parser.add_mutually_exclusive_group(required=True)
    source.add_argument("file", nargs="?", type=Path, help="File with OCR/PDF text")
    source.add_argument("--document-id", type=int, help="Document ID on the OCR service")
    ingest_parser.add_argument("--kind", choices=kinds, default=None, help="Text source kind")

    # add-transaction command
    tx_parser = subparsers.add_parser("add-transaction", help="Import a ledger transaction")
    tx_parser.add_argument("--date", type=_iso_date, required=True, help="YYYY-MM-DD")
    tx_parser.add_argument("--amount", type=_decimal, required=True, help="Signed amount")
    tx_parser.add_argument("--description", required=True)
    tx_parser.add_argument("--category")
    tx_parser.add_argument("--reference", help="External reference (bank transaction id)")
    tx_parser.add_argument("--sales-tax", type=_decimal)

    # find-matches command
    find_parser = subparsers.add_parser("find-matches", help="Show ranked candidates for a receipt")
    find_parser.add_argument("receipt_id", type=int)

    # auto-match command
    auto_parser = subparsers.add_parser(
        "auto-match", help="Auto-match all unmatched receipts"
    )
    auto_parser.add_argument(
        "--threshold",
        type=int,
        default=None,
        help="Minimum confidence (default: matching.auto_match_threshold)",
    )

    # override-receipt command
    override_parser = subparsers.add_parser(
        "override-receipt", help="Manually correct a receipt's extracted fields"
    )
    override_parser.add_argument("receipt_id", type=int)
    override_parser.add_argument("--amount", type=_decimal)
    override_parser.add_argument("--date", help="MM/DD/YYYY")
    override_parser.add_argument("--merchant")

    # match command
    match_parser = subparsers.add_parser("match", help="Manage matches")
    match_sub = match_parser.add_subparsers(dest="match_command", help="Match action")
    create_parser = match_sub.add_parser("create", help="Link a receipt to a transaction")
    create_parser.add_argument("transaction_id", type=int)
    create_parser.add_argument("receipt_id", type=int)
    create_parser.add_argument("--confirm", action="store_true", help="Create as confirmed")
    for action in ("confirm", "reject", "delete"):
        action_parser = match_sub.add_parser(action, help=f"{action.capitalize()} a match")
        action_parser.add_argument("match_id", type=int)

    # status command
    subparsers.add_parser("status", help="Show match statistics")

    return parser


def cmd_extract(config: Config, file: Path, kind: str) -> int:
    """Extract fields from a text file."""
    try:
        text = read_text_file(file)
    except OSError as e:
        print(f"❌ Cannot read {file}: {e}")
        return 1

    extractor = ReceiptExtractor(config.extraction)
    result = extractor.extract(text, SourceKind(kind))
    print(json.dumps(result.to_dict(), indent=2))
    return 0


def cmd_ingest(config: Config, file: Path | None, document_id: int | None, kind: str | None) -> int:
    """Ingest one receipt."""
    store = StateStore(config.state_db_path)
    service = ReceiptIngestionService(store, config)
    source_kind = SourceKind(kind) if kind else None

    if document_id is not None:
        if not config.ocr.enabled:
            print("❌ OCR service not configured (set ocr.base_url or OCR_URL)")
            return 1
        client = OCRClient(
            base_url=config.ocr.base_url,
            token=config.ocr.token,
            timeout=config.ocr.timeout_seconds,
            max_retries=config.ocr.max_retries,
        )
        print(f"📄 Fetching document {document_id}...")
        result = service.ingest_document(client, document_id, source_kind)
    else:
        print(f"📄 Ingesting {file}...")
        result = service.ingest_file(file, source_kind or SourceKind.DOCUMENT)

    if not result.success:
        print(f"❌ Receipt {result.receipt_id} failed: {result.error}")
        return 1

    extraction = result.extraction
    print(f"✓ Receipt {result.receipt_id} processed")
    print(f"  Amount:   {extraction.amount if extraction.amount is not None else '-'}")
    print(f"  Date:     {extraction.date or '-'}")
    print(f"  Merchant: {extraction.merchant or '-'}")

    decision = result.auto_match
    if decision and decision.matched:
        print(
            f"  🔗 Auto-matched to transaction {decision.transaction_id} "
            f"({decision.confidence}%)"
        )
    elif decision and decision.transaction_id is not None:
        print(
            f"  ℹ️  Best candidate: transaction {decision.transaction_id} "
            f"({decision.confidence}%), below threshold"
        )
    return 0


def cmd_add_transaction(config: Config, parsed: argparse.Namespace) -> int:
    """Import one ledger transaction."""
    store = StateStore(config.state_db_path)
    tx_id = store.add_transaction(
        transaction_date=parsed.date,
        amount=parsed.amount,
        description=parsed.description,
        category=parsed.category,
        external_reference=parsed.reference,
        sales_tax=parsed.sales_tax,
    )
    if tx_id is None:
        print("⚠️  Transaction already imported")
    else:
        print(f"✓ Transaction {tx_id} added")
    return 0


def cmd_find_matches(config: Config, receipt_id: int) -> int:
    """Show ranked candidates for a receipt."""
    store = StateStore(config.state_db_path)
    service = AutoMatchService(store, config.matching)
    candidates = service.find_matches_for_receipt(receipt_id)

    if not candidates:
        print(f"No candidates for receipt {receipt_id}")
        return 0

    print(f"\n🔍 Candidates for receipt {receipt_id}")
    print("=" * 60)
    for candidate in candidates:
        tx = candidate.transaction
        print(f"  [{tx.id}] {tx.date.isoformat()}  {tx.amount:>10}  {tx.description}")
        print(f"       {candidate.confidence}%  {'; '.join(candidate.reasons)}")
    print()
    return 0


def cmd_auto_match(config: Config, threshold: int | None) -> int:
    """Run the bulk auto-match."""
    store = StateStore(config.state_db_path)
    service = AutoMatchService(store, config.matching)

    print("🔄 Auto-matching unmatched receipts...")
    result = service.run_bulk(threshold)

    print()
    print("📊 Auto-Match Results")
    print("=" * 40)
    print(f"  Receipts considered: {result.total_receipts}")
    print(f"  Matched:             {result.matched}")
    print(f"  Threshold:           {result.threshold}%")
    print()

    if result.errors:
        print("⚠️  Errors encountered:")
        for error in result.errors:
            print(f"   - {error}")
        return 1

    print("✓ Auto-match completed")
    return 0


def cmd_override_receipt(config: Config, parsed: argparse.Namespace) -> int:
    """Correct a receipt's extracted fields."""
    store = StateStore(config.state_db_path)
    store.override_receipt_fields(
        parsed.receipt_id,
        amount=parsed.amount,
        receipt_date=parsed.date,
        merchant=parsed.merchant,
    )
    print(f"✓ Receipt {parsed.receipt_id} updated")
    return 0


def cmd_match(config: Config, parsed: argparse.Namespace) -> int:
    """Create, confirm, reject or delete a match."""
    store = StateStore(config.state_db_path)
    action = parsed.match_command

    if action == "create":
        match_id = store.create_match(
            parsed.transaction_id, parsed.receipt_id, auto_confirm=parsed.confirm
        )
        print(f"✓ Match {match_id} created")
    elif action == "confirm":
        store.confirm_match(parsed.match_id)
        print(f"✓ Match {parsed.match_id} confirmed")
    elif action == "reject":
        store.reject_match(parsed.match_id)
        print(f"✓ Match {parsed.match_id} rejected")
    elif action == "delete":
        store.delete_match(parsed.match_id)
        print(f"✓ Match {parsed.match_id} deleted")
    else:
        print("❌ Missing match action (create, confirm, reject, delete)")
        return 1
    return 0


def cmd_status(config: Config) -> int:
    """Show match statistics."""
    store = StateStore(config.state_db_path)
    stats = store.get_stats()

    print("\n📊 Match Status")
    print("=" * 40)
    print(f"  Total matches:          {stats['total_matches']}")
    print(f"  Confirmed matches:      {stats['confirmed_matches']}")
    print(f"  Pending matches:        {stats['pending_matches']}")
    print(f"  Unmatched receipts:     {stats['unmatched_receipts']}")
    print(f"  Unmatched transactions: {stats['unmatched_transactions']}")
    print()

    return 0


def main(args: list[str] | None = None) -> int:
    """Main entry point."""
    parser = create_cli()
    parsed = parser.parse_args(args)

    setup_logging(parsed.verbose)

    if not parsed.command:
        parser.print_help()
        return 1

    # Load config
    try:
        config = load_config(parsed.config)
    except Exception as e:
        print(f"❌ Failed to load config: {e}")
        return 1

    # Route to command
    try:
        if parsed.command == "extract":
            return cmd_extract(config, parsed.file, parsed.kind)
        elif parsed.command == "ingest":
            return cmd_ingest(config, parsed.file, parsed.document_id, parsed.kind)
        elif parsed.command == "add-transaction":
            return cmd_add_transaction(config, parsed)
        elif parsed.command == "find-matches":
            return cmd_find_matches(config, parsed.receipt_id)
        elif parsed.command == "auto-match":
            return cmd_auto_match(config, parsed.threshold)
        elif parsed.command == "override-receipt":
            return cmd_override_receipt(config, parsed)
        elif parsed.command == "match":
            return cmd_match(config, parsed)
        elif parsed.command == "status":
            return cmd_status(config)
        else:
            parser.print_help()
            return 1
    except (StateStoreError, OCRError) as e:
        print(f"❌ {e}")
        return 1


if __name__ == "__main__":
    sys.exit(main())
