"""Command-line interface for single-document extraction and batch CSV export.

Provides an ``extract`` subcommand that prints one outcome as JSON and a
``batch`` subcommand that processes a folder of PDFs and writes one CSV
row per document.
"""

import argparse
import csv
import json
import sys
from pathlib import Path
from typing import Any

from fayda_ocr.models import ExtractionOutcome
from fayda_ocr.pipeline.orchestrator import IdentityPipeline
from fayda_ocr.utils.config import AppConfig, load_config
from fayda_ocr.utils.logger import get_logger, setup_logging

logger = get_logger(__name__)

_SUPPORTED_EXTENSIONS = ("*.pdf", "*.PDF")
_META_COLUMNS = [
    "filename",
    "status",
    "processing_time_ms",
    "ocr_calls",
    "errors",
    "warnings",
]


def _find_documents(input_dir: Path) -> list[Path]:
    """Find all PDF files in a directory.

    Args:
        input_dir: Directory to scan for documents.

    Returns:
        Sorted list of document file paths.
    """
    files: list[Path] = []
    for ext in _SUPPORTED_EXTENSIONS:
        files.extend(input_dir.glob(ext))
    return sorted(set(files))


def outcome_to_dict(
    outcome: ExtractionOutcome, include_images: bool = False
) -> dict[str, Any]:
    """Serialize an outcome to JSON-compatible primitives."""
    return {
        "filename": outcome.filename,
        "status": outcome.status.value,
        "record": (
            outcome.record.to_dict(include_images=include_images)
            if outcome.record
            else None
        ),
        "errors": [e.to_dict() for e in outcome.errors],
        "warnings": list(outcome.warnings),
        "states": [s.value for s in outcome.states],
        "ocr_calls": outcome.ocr_calls,
        "processing_time_ms": round(outcome.processing_time_ms, 1),
    }


def outcome_to_row(outcome: ExtractionOutcome) -> dict[str, object]:
    """Flatten an outcome into one CSV row."""
    row: dict[str, object] = {
        "filename": outcome.filename,
        "status": outcome.status.value,
        "processing_time_ms": round(outcome.processing_time_ms, 1),
        "ocr_calls": outcome.ocr_calls,
        "errors": "; ".join(
            f"{e.kind.value}:{e.field.value if e.field else '-'}"
            for e in outcome.errors
        ),
        "warnings": "; ".join(outcome.warnings),
    }
    record = outcome.record
    if record is None:
        return row

    row.update(
        {
            "full_name_amharic": record.full_name.amharic,
            "full_name_english": record.full_name.english,
            "sex": record.sex.value,
            "birth_date_ethiopian": record.birth_date.ethiopian,
            "birth_date_gregorian": record.birth_date.gregorian,
            "expiry_date_ethiopian": record.expiry_date.ethiopian,
            "expiry_date_gregorian": record.expiry_date.gregorian,
            "issue_date_ethiopian": (
                record.issue_date.ethiopian if record.issue_date else None
            ),
            "issue_date_gregorian": (
                record.issue_date.gregorian if record.issue_date else None
            ),
            "phone_number": record.phone_number,
            "card_number": record.card_number,
            "national_id": record.national_id,
            "serial_number": record.serial_number,
        }
    )
    for level, text in (
        ("region", record.address.region),
        ("zone", record.address.zone),
        ("woreda", record.address.woreda),
    ):
        row[f"{level}_amharic"] = text.amharic
        row[f"{level}_english"] = text.english
    return row


def process_folder(
    input_dir: Path,
    output_csv: Path,
    config: AppConfig | None = None,
    workers: int | None = None,
) -> dict[str, int]:
    """Process all PDFs in a folder and export results to CSV.

    Args:
        input_dir: Directory containing eFayda PDFs.
        output_csv: Path for the output CSV file.
        config: Application configuration (loaded from disk when omitted).
        workers: Documents processed concurrently; overrides
            ``pipeline.max_concurrent_documents``.

    Returns:
        Summary dict with total, complete, and rejected counts.
    """
    config = config or load_config()
    if workers is not None:
        config = config.model_copy(deep=True)
        config.pipeline.max_concurrent_documents = workers

    files = _find_documents(input_dir)
    if not files:
        logger.warning("No documents found in %s", input_dir)
        return {"total": 0, "complete": 0, "rejected": 0}

    logger.info("Found %d documents to process", len(files))
    pipeline = IdentityPipeline(config)
    outcomes = pipeline.process_many((p.read_bytes(), p.name) for p in files)

    _write_csv([outcome_to_row(o) for o in outcomes], output_csv)
    logger.info("Results written to %s", output_csv)

    complete = sum(1 for o in outcomes if o.is_complete)
    summary = {
        "total": len(outcomes),
        "complete": complete,
        "rejected": len(outcomes) - complete,
    }
    _print_summary(summary, output_csv)
    return summary


def _write_csv(results: list[dict[str, object]], output_path: Path) -> None:
    """Write result rows to a CSV file.

    Args:
        results: List of row dictionaries.
        output_path: Path for the output CSV file.
    """
    if not results:
        return

    all_keys: set[str] = set()
    for r in results:
        all_keys.update(r.keys())

    field_columns = sorted(all_keys - set(_META_COLUMNS))
    columns = [c for c in _META_COLUMNS if c in all_keys] + field_columns

    output_path.parent.mkdir(parents=True, exist_ok=True)
    with open(output_path, "w", newline="", encoding="utf-8") as f:
        writer = csv.DictWriter(f, fieldnames=columns, extrasaction="ignore")
        writer.writeheader()
        writer.writerows(results)


def _print_summary(summary: dict[str, int], output_csv: Path) -> None:
    print(f"\n{'=' * 50}")
    print("Batch Processing Complete")
    print(f"{'=' * 50}")
    print(f"Total:    {summary['total']}")
    print(f"Complete: {summary['complete']}")
    print(f"Rejected: {summary['rejected']}")
    print(f"Output:   {output_csv}")


def extract_single(
    file_path: Path,
    config: AppConfig | None = None,
    include_images: bool = False,
) -> tuple[dict[str, Any], bool]:
    """Process a single PDF.

    Returns:
        Tuple of (serialized outcome, whether a record was produced).
    """
    pipeline = IdentityPipeline(config or load_config())
    outcome = pipeline.process_file(file_path)
    return outcome_to_dict(outcome, include_images=include_images), outcome.is_complete


def main(argv: list[str] | None = None) -> None:
    """Parse CLI arguments and dispatch to the appropriate command.

    Args:
        argv: Command-line arguments (defaults to sys.argv).
    """
    parser = argparse.ArgumentParser(
        description="eFayda ID extraction",
        formatter_class=argparse.RawDescriptionHelpFormatter,
    )
    parser.add_argument("-c", "--config", type=Path, help="YAML configuration file")

    subparsers = parser.add_subparsers(dest="command", help="Available commands")

    batch_parser = subparsers.add_parser("batch", help="Process a folder of PDFs")
    batch_parser.add_argument("input_dir", type=Path, help="Directory with PDFs")
    batch_parser.add_argument(
        "-o",
        "--output",
        type=Path,
        default=Path("results.csv"),
        help="Output CSV file (default: results.csv)",
    )
    batch_parser.add_argument(
        "-w", "--workers", type=int, help="Documents processed concurrently"
    )

    single_parser = subparsers.add_parser("extract", help="Process a single PDF")
    single_parser.add_argument("file", type=Path, help="PDF file to process")
    single_parser.add_argument("-o", "--output", type=Path, help="Output JSON file")
    single_parser.add_argument(
        "--include-images",
        action="store_true",
        help="Embed photo and QR code as base64",
    )

    args = parser.parse_args(argv)

    config = load_config(args.config)
    setup_logging(config.log_level)

    if args.command == "batch":
        if not args.input_dir.is_dir():
            print(f"Error: {args.input_dir} is not a directory", file=sys.stderr)
            sys.exit(1)
        process_folder(args.input_dir, args.output, config, args.workers)
    elif args.command == "extract":
        if not args.file.exists():
            print(f"Error: {args.file} does not exist", file=sys.stderr)
            sys.exit(1)
        result, complete = extract_single(args.file, config, args.include_images)
        output_str = json.dumps(result, indent=2, ensure_ascii=False)
        if args.output:
            args.output.parent.mkdir(parents=True, exist_ok=True)
            args.output.write_text(output_str, encoding="utf-8")
            print(f"Output written to {args.output}")
        else:
            print(output_str)
        if not complete:
            sys.exit(2)
    else:
        parser.print_help()
        sys.exit(0)


if __name__ == "__main__":
    main()
