"""Command-line interface for scanning receipts and CSV export.

Provides subcommands for scanning a single photo, parsing receipt text,
and processing a folder of receipt photos in parallel.
"""

import argparse
import csv
import json
import sys
import time
from concurrent.futures import ThreadPoolExecutor, as_completed
from pathlib import Path

from receipt_scanner.context import ScanContext
from receipt_scanner.errors import ReceiptScanError
from receipt_scanner.pipeline import ReceiptScanner, ScanResult
from receipt_scanner.utils.config import AppConfig, load_config
from receipt_scanner.utils.logger import get_logger, setup_logging

logger = get_logger(__name__)

_SUPPORTED_EXTENSIONS = ("*.png", "*.jpg", "*.jpeg", "*.tiff", "*.tif", "*.webp")
_CSV_COLUMNS = [
    "filename",
    "status",
    "vendor",
    "date",
    "name",
    "quantity",
    "unit",
    "unit_price",
    "price",
    "category",
    "expires_on",
    "needs_review",
    "error",
]


def _find_receipts(input_dir: Path) -> list[Path]:
    """Find all supported receipt images in a directory.

    Args:
        input_dir: Directory to scan for images.

    Returns:
        Sorted list of image paths.
    """
    files: list[Path] = []
    for ext in _SUPPORTED_EXTENSIONS:
        files.extend(input_dir.glob(ext))
        files.extend(input_dir.glob(ext.upper()))
    return sorted(set(files))


def result_to_dict(result: ScanResult) -> dict[str, object]:
    """Serialize a scan result for JSON output."""
    receipt = result.receipt
    return {
        "run_id": result.run_id,
        "vendor": receipt.vendor,
        "date": receipt.date,
        "currency": receipt.currency,
        "items": [c.to_record() for c in result.items],
        "discounts": [
            {"label": d.label, "amount": str(d.amount)} for d in receipt.discounts
        ],
        "subtotal": str(receipt.subtotal) if receipt.subtotal is not None else None,
        "tax_total": str(receipt.tax_total) if receipt.tax_total is not None else None,
        "total": str(receipt.total) if receipt.total is not None else None,
        "needs_review": receipt.needs_review,
        "review_reasons": list(receipt.review_reasons),
        "skipped_lines": [s.text for s in receipt.skipped_lines],
        "text_issues": [i.code for i in result.text_report.issues],
        "language": result.text_report.language,
        "ocr_engine": result.ocr_engine,
        "ocr_confidence": result.ocr_confidence,
        "adjustments": result.adjustments,
    }


def _result_rows(filename: str, result: ScanResult) -> list[dict[str, object]]:
    rows = []
    for c in result.items:
        record = c.to_record()
        rows.append(
            {
                "filename": filename,
                "status": "success",
                "vendor": result.receipt.vendor,
                "date": result.receipt.date,
                "name": record["name"],
                "quantity": record["quantity"],
                "unit": record["unit"],
                "unit_price": record["unit_price"],
                "price": record["price"],
                "category": record["category"],
                "expires_on": record["expires_on"],
                "needs_review": result.receipt.needs_review,
                "error": None,
            }
        )
    return rows


def process_folder(
    input_dir: Path,
    output_csv: Path,
    workers: int = 4,
    verbose: bool = False,
    config: AppConfig | None = None,
) -> dict[str, int]:
    """Scan every receipt image in a folder and export items to CSV.

    Receipts are independent, so they are scanned concurrently with one
    :class:`ScanContext` each.

    Args:
        input_dir: Directory containing receipt photos.
        output_csv: Path for the output CSV file.
        workers: Number of receipts scanned in parallel.
        verbose: Whether to print per-file progress.
        config: Application configuration; loaded from the default path
            when omitted.

    Returns:
        Summary dict with total, successful, and failed counts.
    """
    scanner = ReceiptScanner(config or load_config())

    files = _find_receipts(input_dir)
    if not files:
        logger.warning("No receipt images found in %s", input_dir)
        return {"total": 0, "successful": 0, "failed": 0}

    logger.info("Found %d receipts to process", len(files))

    rows_by_file: dict[str, list[dict[str, object]]] = {}
    successful = 0
    failed = 0

    def scan_file(path: Path) -> ScanResult:
        return scanner.scan(path.read_bytes(), ScanContext())

    with ThreadPoolExecutor(max_workers=max(1, workers)) as pool:
        futures = {pool.submit(scan_file, path): path for path in files}
        for future in as_completed(futures):
            path = futures[future]
            try:
                result = future.result()
            except (ReceiptScanError, OSError) as exc:
                logger.error("Failed to process %s: %s", path.name, exc)
                rows_by_file[path.name] = [
                    {"filename": path.name, "status": "failed", "error": str(exc)}
                ]
                failed += 1
                continue
            rows_by_file[path.name] = _result_rows(path.name, result)
            successful += 1
            if verbose:
                print(f"Processed {path.name}: {len(result.items)} items")

    rows = [row for name in sorted(rows_by_file) for row in rows_by_file[name]]
    _write_csv(rows, output_csv)
    logger.info("Results written to %s", output_csv)

    summary = {"total": len(files), "successful": successful, "failed": failed}
    _print_summary(summary, output_csv)
    return summary


def _write_csv(rows: list[dict[str, object]], output_path: Path) -> None:
    """Write item rows to a CSV file.

    Args:
        rows: One dictionary per item (or per failed receipt).
        output_path: Path for the output CSV file.
    """
    if not rows:
        return

    output_path.parent.mkdir(parents=True, exist_ok=True)
    with open(output_path, "w", newline="") as f:
        writer = csv.DictWriter(f, fieldnames=_CSV_COLUMNS, extrasaction="ignore")
        writer.writeheader()
        writer.writerows(rows)


def _print_summary(summary: dict[str, int], output_csv: Path) -> None:
    """Print batch processing summary to stdout.

    Args:
        summary: Counts of total, successful, and failed receipts.
        output_csv: Path to the output CSV.
    """
    print(f"\n{'=' * 50}")
    print("Batch Processing Complete")
    print(f"{'=' * 50}")
    print(f"Total:      {summary['total']}")
    print(f"Successful: {summary['successful']}")
    print(f"Failed:     {summary['failed']}")
    print(f"Output:     {output_csv}")


def _emit(payload: dict[str, object], output: Path | None) -> None:
    output_str = json.dumps(payload, indent=2, ensure_ascii=False)
    if output:
        output.parent.mkdir(parents=True, exist_ok=True)
        output.write_text(output_str)
        print(f"Output written to {output}")
    else:
        print(output_str)


def _progress_printer(percent: int, stage: str) -> None:
    print(f"[{percent:3d}%] {stage}", file=sys.stderr)


def main(argv: list[str] | None = None) -> None:
    """Parse CLI arguments and dispatch to the appropriate command.

    Args:
        argv: Command-line arguments (defaults to sys.argv).
    """
    parser = argparse.ArgumentParser(
        description="Grocery Receipt Scanner",
        formatter_class=argparse.RawDescriptionHelpFormatter,
    )
    parser.add_argument("-c", "--config", type=Path, help="Path to config YAML")

    subparsers = parser.add_subparsers(dest="command", help="Available commands")

    scan_parser = subparsers.add_parser("scan", help="Scan a single receipt photo")
    scan_parser.add_argument("file", type=Path, help="Receipt image to scan")
    scan_parser.add_argument("-d", "--date", help="Purchase date (YYYY-MM-DD)")
    scan_parser.add_argument("-o", "--output", type=Path, help="Output JSON file")
    scan_parser.add_argument(
        "-v", "--verbose", action="store_true", help="Print progress"
    )

    parse_parser = subparsers.add_parser("parse", help="Parse receipt text")
    parse_parser.add_argument(
        "file", type=Path, help="Text file with OCR output, or - for stdin"
    )
    parse_parser.add_argument("-d", "--date", help="Purchase date (YYYY-MM-DD)")
    parse_parser.add_argument("-o", "--output", type=Path, help="Output JSON file")

    batch_parser = subparsers.add_parser("batch", help="Process a folder of receipts")
    batch_parser.add_argument("input_dir", type=Path, help="Directory with receipts")
    batch_parser.add_argument(
        "-o",
        "--output",
        type=Path,
        default=Path("receipts.csv"),
        help="Output CSV file (default: receipts.csv)",
    )
    batch_parser.add_argument(
        "-w", "--workers", type=int, default=4, help="Parallel scans (default: 4)"
    )
    batch_parser.add_argument(
        "-v", "--verbose", action="store_true", help="Verbose output"
    )

    args = parser.parse_args(argv)

    config = load_config(args.config)
    setup_logging(config.log_level)

    if args.command == "batch":
        if not args.input_dir.is_dir():
            print(f"Error: {args.input_dir} is not a directory", file=sys.stderr)
            sys.exit(1)
        process_folder(
            args.input_dir, args.output, args.workers, args.verbose, config
        )
        return

    if args.command not in ("scan", "parse"):
        parser.print_help()
        sys.exit(0)

    scanner = ReceiptScanner(config)
    try:
        if args.command == "scan":
            if not args.file.exists():
                print(f"Error: {args.file} does not exist", file=sys.stderr)
                sys.exit(1)
            context = ScanContext(
                on_progress=_progress_printer if args.verbose else None
            )
            start = time.time()
            result = scanner.scan(args.file.read_bytes(), context, args.date)
            logger.info("Scanned %s in %.2fs", args.file.name, time.time() - start)
        else:
            if str(args.file) == "-":
                text = sys.stdin.read()
            elif args.file.exists():
                text = args.file.read_text()
            else:
                print(f"Error: {args.file} does not exist", file=sys.stderr)
                sys.exit(1)
            result = scanner.parse_text(text, purchase_date=args.date)
    except ReceiptScanError as exc:
        print(f"Error [{exc.code}]: {exc.message}", file=sys.stderr)
        print(exc.guidance, file=sys.stderr)
        sys.exit(1)

    _emit(result_to_dict(result), args.output)


if __name__ == "__main__":
    main()
