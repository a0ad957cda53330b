"""
Transform a CRM workbook export into import-template CSV.

Usage:
    crm-transform --mapping <file> --template <file-or-header> --workbook <file> [options]

Examples:
    # Transform, CSV to stdout, stats summary to stderr
    crm-transform --mapping accounts.json --template "id,name,accountNumber" --workbook export.xlsx

    # Write CSV and the invalid-row report to files
    crm-transform --mapping accounts.yaml --template accounts_template.csv \\
        --workbook export.xlsx --output accounts.csv --errors accounts_errors.json

    # Fill empty columns of every valid row
    crm-transform ... --default ownerId=u-17 --default importStatus=Imported

    # Probe the workbook (sheet, row count, columns, sample) and exit
    crm-transform --mapping accounts.json --workbook export.xlsx --probe-only

Exit codes: 0 success (invalid rows included), 1 file not found,
2 unreadable workbook or invalid mapping/template.
"""

from __future__ import annotations

import argparse
import json
import os
import sys
from pathlib import Path

from crm_ingestion.exceptions import ConfigError, CrmIngestionError
from crm_ingestion.logging_config import configure_logging
from crm_ingestion.mapping.loader import load_mapping_config
from crm_ingestion.services.emit import errors_to_json, write_csv
from crm_ingestion.services.transformation_engine import TransformationEngine

LOG_LEVEL_ENV = "CRM_INGESTION_LOG_LEVEL"
LOG_LEVELS = ("DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL")

EXIT_OK = 0
EXIT_MISSING_FILE = 1
EXIT_STRUCTURAL = 2


def _default_pair(text: str) -> tuple[str, str]:
    column, sep, value = text.partition("=")
    if not sep or not column.strip():
        raise argparse.ArgumentTypeError(f"expected COLUMN=VALUE, got {text!r}")
    return column.strip(), value


def _parse_args(argv: list[str] | None) -> argparse.Namespace:
    parser = argparse.ArgumentParser(
        prog="crm-transform",
        description="Transform a CRM spreadsheet export into rows matching an import template.",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog=__doc__,
    )
    parser.add_argument(
        "--mapping",
        required=True,
        type=Path,
        help="Mapping configuration file (.json, .yaml or .yml).",
    )
    parser.add_argument(
        "--template",
        default=None,
        help="Template CSV file, or the header line itself (e.g. 'id,name,accountNumber').",
    )
    parser.add_argument(
        "--workbook",
        required=True,
        type=Path,
        help="Workbook export (.xlsx or .xls).",
    )
    parser.add_argument(
        "--output",
        type=Path,
        default=None,
        help="Write transformed CSV here (default: stdout).",
    )
    parser.add_argument(
        "--errors",
        type=Path,
        default=None,
        help="Write stats, invalid rows and warnings as JSON here.",
    )
    parser.add_argument(
        "--default",
        dest="defaults",
        action="append",
        type=_default_pair,
        default=[],
        metavar="COLUMN=VALUE",
        help="Value for an empty column of every valid row (repeatable; never the id column).",
    )
    parser.add_argument(
        "--probe-only",
        action="store_true",
        help="Print sheet name, row count, columns and sample rows, then exit.",
    )
    parser.add_argument(
        "--log-level",
        type=str.upper,
        choices=LOG_LEVELS,
        default=os.environ.get(LOG_LEVEL_ENV, "WARNING"),
        help=f"Log level for JSON logs on stderr (default: ${LOG_LEVEL_ENV} or WARNING).",
    )
    args = parser.parse_args(argv)
    if args.log_level not in LOG_LEVELS:
        parser.error(f"${LOG_LEVEL_ENV} must be one of {', '.join(LOG_LEVELS)}")
    if not args.probe_only and args.template is None:
        parser.error("--template is required unless --probe-only is given")
    return args


def _read_template(value: str) -> str:
    path = Path(value)
    if path.is_file():
        return path.read_text(encoding="utf-8-sig")
    return value


def _print_error(exc: CrmIngestionError) -> None:
    print(f"ERROR [{exc.code}]: {exc}", file=sys.stderr)
    if isinstance(exc, ConfigError) and len(exc.errors) > 1:
        for problem in exc.errors:
            print(f"  - {problem}", file=sys.stderr)


def main(argv: list[str] | None = None) -> int:
    args = _parse_args(argv)

    configure_logging(level=args.log_level, stream=sys.stderr)

    for label, path in (("Mapping", args.mapping), ("Workbook", args.workbook)):
        if not path.is_file():
            print(f"ERROR: {label} file not found: {path}", file=sys.stderr)
            return EXIT_MISSING_FILE

    try:
        config = load_mapping_config(args.mapping)
        engine = TransformationEngine(config)
        workbook = args.workbook.read_bytes()

        if args.probe_only:
            probe = engine.probe(workbook, source_name=args.workbook.name)
            print(f"Format: {probe.format}")
            print(f"Sheet: {probe.sheet_name}")
            print(f"Rows: {probe.row_count}")
            print(f"Columns: {list(probe.columns)}")
            print(f"Sample (first {len(probe.sample_rows)}):")
            for i, row in enumerate(probe.sample_rows, 1):
                print(f"  {i}: {row}")
            return EXIT_OK

        result = engine.transform(
            workbook,
            _read_template(args.template),
            dict(args.defaults),
            source_name=args.workbook.name,
        )
    except CrmIngestionError as exc:
        _print_error(exc)
        return EXIT_STRUCTURAL

    if args.output is not None:
        with open(args.output, "w", newline="", encoding="utf-8") as f:
            write_csv(result, f)
    else:
        write_csv(result, sys.stdout)

    if args.errors is not None:
        args.errors.write_text(errors_to_json(result), encoding="utf-8")

    summary = {
        "mapping": config.name,
        "workbook": str(args.workbook),
        **result.stats.to_dict(),
        "warnings": len(result.warnings),
    }
    print(json.dumps(summary), file=sys.stdout if args.output is not None else sys.stderr)

    for err in result.errors[:10]:
        print(f"  Row {err.row}: {err.error}", file=sys.stderr)
    if len(result.errors) > 10:
        print(f"  ... and {len(result.errors) - 10} more invalid rows.", file=sys.stderr)

    return EXIT_OK


if __name__ == "__main__":
    sys.exit(main())
