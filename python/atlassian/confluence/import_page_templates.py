#!/usr/bin/env python3
"""
import_page_templates.py

Create Confluence Cloud page templates from a CSV export of the legacy
on-prem database.

CSV columns (fixed order when there is no header row):

    TEMPLATENAME,CONTENT

Each row becomes one POST /wiki/rest/api/template call. A failing row is
logged and the script moves on to the next one.
"""

import argparse
import logging
import sys
from pathlib import Path
from typing import Dict, List, Optional

from confluence_common import (
    ConfluenceConfig,
    ConfluenceError,
    RunSummary,
    add_common_arguments,
    api_call,
    config_from_args,
    normalize_null,
    read_csv_rows,
    setup_logging,
)

TEMPLATE_COLUMNS = ["TEMPLATENAME", "CONTENT"]

TEMPLATE_PATH = "/wiki/rest/api/template"


def template_payload(name: str, content: Optional[str]) -> Dict:
    return {
        "name": name,
        "templateType": "page",
        "body": {
            "storage": {
                "value": content,
                "representation": "view",
            }
        },
    }


def create_page_template(
    config: ConfluenceConfig,
    name: Optional[str],
    content: Optional[str],
    dry_run: bool = False,
) -> None:
    if not name:
        raise ConfluenceError("Template name is missing")

    if dry_run:
        logging.info(f"DRY-RUN: would create page template '{name}'")
        return

    resp = api_call(config, "POST", TEMPLATE_PATH, body=template_payload(name, content))
    if resp.status != 200:
        raise ConfluenceError(
            f"Failed to create page template '{name}' ({resp.status}): {resp.body}"
        )
    logging.info(f"Created page template '{name}'")


def process_template_rows(
    config: ConfluenceConfig,
    rows: List[Dict[str, Optional[str]]],
    dry_run: bool = False,
) -> RunSummary:
    summary = RunSummary()

    for idx, row in enumerate(rows, start=1):
        name = normalize_null(row.get("TEMPLATENAME"))
        content = normalize_null(row.get("CONTENT"))
        try:
            create_page_template(config, name, content, dry_run=dry_run)
            summary.succeeded += 1
        except ConfluenceError as e:
            logging.error(f"[row {idx}] {e}")
            summary.failed += 1

    return summary


def parse_args(argv=None) -> argparse.Namespace:
    parser = argparse.ArgumentParser(
        description="Create Confluence Cloud page templates from a CSV export."
    )
    add_common_arguments(parser)
    return parser.parse_args(argv)


def main(argv=None) -> int:
    args = parse_args(argv)
    setup_logging(args.log_file or "import_page_templates.log")

    config = config_from_args(args)
    logging.info(f"Target site: {config.base_url}{' (dry-run)' if args.dry_run else ''}")

    rows = read_csv_rows(Path(args.csv_path), TEMPLATE_COLUMNS, has_header=args.header)
    logging.info(f"Read {len(rows)} row(s) from {args.csv_path}")

    summary = process_template_rows(config, rows, dry_run=args.dry_run)

    print()
    print(summary.as_table("Templates"))
    return 0


if __name__ == "__main__":
    sys.exit(main())
