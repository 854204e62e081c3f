"""Command-line interface for document analysis and CSV export.

Provides subcommands for analyzing a single document, processing folders
of documents in parallel with results exported to CSV, and checking that
the inference services are reachable.
"""

import argparse
import csv
import json
import sys
from pathlib import Path

from docintel.ocr.document import RawDocument
from docintel.pipeline import DocumentPipeline, PipelineResult
from docintel.utils.config import AppConfig, load_config
from docintel.utils.logger import get_logger, setup_logging

logger = get_logger(__name__)

_SUPPORTED_EXTENSIONS = (
    "*.png",
    "*.jpg",
    "*.jpeg",
    "*.tiff",
    "*.tif",
    "*.webp",
    "*.pdf",
)
_META_COLUMNS = [
    "filename",
    "status",
    "template_id",
    "classification_confidence",
    "text_confidence",
    "stamp_present",
    "signature_present",
    "stamp_validated",
    "matched_stamp_name",
    "signer_name",
    "signed_date",
    "processing_time_s",
    "error",
]


def _find_documents(input_dir: Path) -> list[Path]:
    """Find all supported document files in a directory.

    Args:
        input_dir: Directory to scan for documents.

    Returns:
        Sorted list of document file paths.
    """
    files: list[Path] = []
    for ext in _SUPPORTED_EXTENSIONS:
        files.extend(input_dir.glob(ext))
        files.extend(input_dir.glob(ext.upper()))
    return sorted(set(files))


def _build_pipeline(config: AppConfig) -> DocumentPipeline:
    return DocumentPipeline.from_config(config)


def _result_row(result: PipelineResult) -> dict[str, object]:
    """Flatten a pipeline result into one CSV row.

    Args:
        result: Pipeline result for one document.

    Returns:
        Row with the meta columns followed by the template's fields.
    """
    stamps = result.stamp_signature
    row: dict[str, object] = {
        "filename": result.filename,
        "status": "success",
        "template_id": result.fields.template_id,
        "classification_confidence": round(result.classification.confidence, 3),
        "text_confidence": round(result.extraction.confidence, 3),
        "stamp_present": stamps.stamp.present,
        "signature_present": stamps.signature.present,
        "stamp_validated": stamps.validated,
        "matched_stamp_name": stamps.matched_stamp_name,
        "signer_name": stamps.signer_name,
        "signed_date": stamps.signed_date,
        "processing_time_s": round(result.elapsed_ms / 1000, 2),
        "error": result.extraction_error,
    }
    for field_id, value in result.fields.fields.items():
        row.setdefault(field_id, value)
    return row


def process_folder(
    input_dir: Path,
    output_csv: Path,
    pipeline: DocumentPipeline,
    max_workers: int = 4,
    verbose: bool = False,
) -> dict[str, int]:
    """Analyze all documents in a folder and export results to CSV.

    Args:
        input_dir: Directory containing document files.
        output_csv: Path for the output CSV file.
        pipeline: Pipeline used for every document.
        max_workers: Documents processed concurrently.
        verbose: Whether to print per-file progress.

    Returns:
        Summary dict with total, successful, and failed counts.
    """
    files = _find_documents(input_dir)
    if not files:
        logger.warning("No documents found in %s", input_dir)
        return {"total": 0, "successful": 0, "failed": 0}

    logger.info("Found %d documents to process", len(files))

    rows: list[dict[str, object]] = []
    docs: list[RawDocument] = []
    for file_path in files:
        try:
            docs.append(RawDocument.from_path(file_path))
        except OSError as exc:
            logger.error("Failed to read %s: %s", file_path.name, exc)
            rows.append(
                {"filename": file_path.name, "status": "failed", "error": str(exc)}
            )
    failed = len(rows)
    successful = 0

    results = pipeline.process_many(
        docs, max_workers=max_workers, return_exceptions=True
    )
    for i, (doc, result) in enumerate(zip(docs, results), 1):
        if isinstance(result, Exception):
            failed += 1
            if verbose:
                print(f"Failed [{i}/{len(docs)}]: {doc.filename} - {result}")
            rows.append(
                {"filename": doc.filename, "status": "failed", "error": str(result)}
            )
            continue
        successful += 1
        if verbose:
            print(
                f"Processed [{i}/{len(docs)}]: {result.filename} -> "
                f"{result.fields.template_id}"
            )
        rows.append(_result_row(result))

    _write_csv(rows, output_csv)
    logger.info("Results written to %s", output_csv)

    summary = {"total": len(files), "successful": successful, "failed": failed}
    _print_summary(summary, output_csv)
    return summary


def _write_csv(results: list[dict[str, object]], output_path: Path) -> None:
    """Write analysis results to a CSV file.

    Args:
        results: List of result dictionaries.
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
    with open(output_path, "w", newline="") as f:
        writer = csv.DictWriter(f, fieldnames=columns, extrasaction="ignore")
        writer.writeheader()
        writer.writerows(results)


def _print_summary(summary: dict[str, int], output_csv: Path) -> None:
    """Print batch processing summary to stdout.

    Args:
        summary: Counts of total, successful, and failed documents.
        output_csv: Path to the output CSV.
    """
    print(f"\n{'=' * 50}")
    print("Batch Processing Complete")
    print(f"{'=' * 50}")
    print(f"Total:      {summary['total']}")
    print(f"Successful: {summary['successful']}")
    print(f"Failed:     {summary['failed']}")
    print(f"Output:     {output_csv}")


def extract_single(file_path: Path, pipeline: DocumentPipeline) -> dict[str, object]:
    """Analyze a single document and return the full result.

    Args:
        file_path: Path to the document file.
        pipeline: Pipeline to run.

    Returns:
        JSON-serializable pipeline result.
    """
    doc = RawDocument.from_path(file_path)
    return pipeline.process(doc).to_dict()


def main(argv: list[str] | None = None) -> None:
    """Parse CLI arguments and dispatch to the appropriate command.

    Args:
        argv: Command-line arguments (defaults to sys.argv).
    """
    parser = argparse.ArgumentParser(
        description="Document Intelligence Processor",
        formatter_class=argparse.RawDescriptionHelpFormatter,
    )
    parser.add_argument(
        "-c",
        "--config",
        type=Path,
        default=None,
        help="Configuration file (default: configs/config.yaml)",
    )

    subparsers = parser.add_subparsers(dest="command", help="Available commands")

    batch_parser = subparsers.add_parser("batch", help="Process a folder of documents")
    batch_parser.add_argument(
        "input_dir", type=Path, help="Input directory with documents"
    )
    batch_parser.add_argument(
        "-o",
        "--output",
        type=Path,
        default=Path("results.csv"),
        help="Output CSV file (default: results.csv)",
    )
    batch_parser.add_argument(
        "-w",
        "--workers",
        type=int,
        default=None,
        help="Documents processed in parallel (default: from config)",
    )
    batch_parser.add_argument(
        "-v", "--verbose", action="store_true", help="Verbose output"
    )

    single_parser = subparsers.add_parser("extract", help="Process a single document")
    single_parser.add_argument("file", type=Path, help="Document file to process")
    single_parser.add_argument("-o", "--output", type=Path, help="Output JSON file")

    subparsers.add_parser("health", help="Check the inference services")

    args = parser.parse_args(argv)

    if args.command is None:
        parser.print_help()
        sys.exit(0)

    config = load_config(args.config)
    setup_logging(config.log_level)

    if args.command == "batch":
        if not args.input_dir.is_dir():
            print(f"Error: {args.input_dir} is not a directory", file=sys.stderr)
            sys.exit(1)
        workers = args.workers or config.document.max_workers
        with _build_pipeline(config) as pipeline:
            process_folder(
                args.input_dir, args.output, pipeline, workers, args.verbose
            )
    elif args.command == "extract":
        if not args.file.exists():
            print(f"Error: {args.file} does not exist", file=sys.stderr)
            sys.exit(1)
        with _build_pipeline(config) as pipeline:
            result = extract_single(args.file, pipeline)
        output_str = json.dumps(result, indent=2, ensure_ascii=False)
        if args.output:
            args.output.parent.mkdir(parents=True, exist_ok=True)
            args.output.write_text(output_str)
            print(f"Output written to {args.output}")
        else:
            print(output_str)
    elif args.command == "health":
        with _build_pipeline(config) as pipeline:
            health = pipeline.check_health()
        print(json.dumps(health, indent=2))
        if not all(health.values()):
            sys.exit(1)


if __name__ == "__main__":
    main()
