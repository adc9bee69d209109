#!/usr/bin/env python3
"""
import_space_shortcuts.py

Set Confluence Cloud space shortcuts ("quick links") from a CSV export of the
legacy on-prem database.

CSV COLUMNS
-----------
Fixed order when the file has no header row:

    SPACE_KEY,CUSTOM_TITLE,SPACEKEY,TITLE,HARDCODED_URL,POSITION

- SPACE_KEY      space whose sidebar gets the shortcut
- CUSTOM_TITLE   link text (optional)
- SPACEKEY/TITLE target page, used when HARDCODED_URL is empty
- HARDCODED_URL  external link
- POSITION       sort order inside the space

Empty cells, \\N and NULL are all treated as missing.

WHAT THE SCRIPT DOES
--------------------
1. Groups rows by SPACE_KEY (file order does not matter).
2. For each row builds a shortcut:
     - HARDCODED_URL rows link straight to that URL.
     - Page rows are resolved with
         GET /wiki/api/v2/spaces?keys=<SPACEKEY>
         GET /wiki/api/v2/pages?space-id=<id>&title=<TITLE>
       Rows that cannot be resolved are logged and skipped.
3. Sends one batch per space to the shortcut endpoint.

WARNING: the batch call REPLACES every existing shortcut of the space.

Usage:
    python import_space_shortcuts.py shortcuts.csv --domain acme.atlassian.net \\
        --email me@acme.com --token <api token> [--header] [--dry-run]
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

SHORTCUT_COLUMNS = ["SPACE_KEY", "CUSTOM_TITLE", "SPACEKEY", "TITLE", "HARDCODED_URL", "POSITION"]

SPACES_PATH = "/wiki/api/v2/spaces"
PAGES_PATH = "/wiki/api/v2/pages"


# ---------------------------------------------------------------------------
# Lookups
# ---------------------------------------------------------------------------

def _results(resp, what: str) -> List[Dict]:
    try:
        data = resp.json()
    except ValueError as e:
        raise ConfluenceError(f"Unable to locate {what}: response is not JSON ({e})") from e

    if not isinstance(data, dict):
        raise ConfluenceError(f"Unable to locate {what}: unexpected response {resp.body[:300]}")
    results = data.get("results") or []
    if not isinstance(results, list) or not all(isinstance(r, dict) for r in results):
        raise ConfluenceError(f"Unable to locate {what}: unexpected results {resp.body[:300]}")
    return results


def resolve_space_id(config: ConfluenceConfig, space_key: Optional[str]) -> str:
    """
    Return the id of the space with the given key. Anything other than
    exactly one match is an error.
    """
    if not space_key:
        raise ConfluenceError("Unable to locate space id: no space key given")

    resp = api_call(config, "GET", SPACES_PATH, params={"keys": space_key})
    if not resp.ok:
        raise ConfluenceError(
            f"Unable to locate space id for '{space_key}' ({resp.status}): {resp.body}"
        )

    results = _results(resp, "space id")
    if len(results) != 1:
        raise ConfluenceError(
            f"Unable to locate space id for '{space_key}': {len(results)} matches"
        )
    space_id = results[0].get("id")
    if space_id is None:
        raise ConfluenceError(f"Unable to locate space id for '{space_key}': result has no id")
    return str(space_id)


def resolve_page_url(config: ConfluenceConfig, space_id: str, title: Optional[str]) -> str:
    """
    Return the absolute web URL of the page titled `title` in space `space_id`.
    """
    if not title:
        raise ConfluenceError(f"Unable to locate page URL: no title given (space id {space_id})")

    resp = api_call(config, "GET", PAGES_PATH, params={"space-id": space_id, "title": title})
    if not resp.ok:
        raise ConfluenceError(
            f"Unable to locate page URL for '{title}' ({resp.status}): {resp.body}"
        )

    results = _results(resp, "page URL")
    if len(results) != 1:
        raise ConfluenceError(
            f"Unable to locate page URL for '{title}' in space id {space_id}: {len(results)} matches"
        )

    links = results[0].get("_links")
    webui = links.get("webui") if isinstance(links, dict) else None
    if not webui:
        raise ConfluenceError(f"Unable to locate page URL for '{title}': no webui link")
    return f"{config.base_url}/wiki{webui}"


# ---------------------------------------------------------------------------
# Shortcut building
# ---------------------------------------------------------------------------

def custom_url_shortcut(title: Optional[str], url: str) -> Dict[str, Optional[str]]:
    return {"title": title, "url": url, "id": None}


def build_shortcut(config: ConfluenceConfig, row: Dict[str, Optional[str]]) -> Dict[str, Optional[str]]:
    """
    Turn one normalized row into a shortcut item. Raises ConfluenceError when
    a page row cannot be resolved.
    """
    if row["HARDCODED_URL"]:
        return custom_url_shortcut(row["CUSTOM_TITLE"], row["HARDCODED_URL"])

    space_id = resolve_space_id(config, row["SPACEKEY"])
    page_url = resolve_page_url(config, space_id, row["TITLE"])
    return {"title": row["CUSTOM_TITLE"], "url": page_url, "id": None}


def _position_key(row: Dict[str, Optional[str]]):
    position = row["POSITION"]
    if position is None:
        return (1, 0)
    try:
        return (0, int(position))
    except ValueError:
        logging.warning(
            f"[{row['SPACE_KEY']}] POSITION '{position}' is not an integer; shortcut placed last"
        )
        return (1, 0)


def group_rows_by_space(rows: List[Dict[str, Optional[str]]]) -> Dict[str, List[Dict[str, Optional[str]]]]:
    """
    Group rows by SPACE_KEY, keeping spaces in first-seen order and rows
    within a space sorted by POSITION (stable; unpositioned rows go last).
    """
    groups: Dict[str, List[Dict[str, Optional[str]]]] = {}
    for row in rows:
        groups.setdefault(row["SPACE_KEY"], []).append(row)
    for key in groups:
        groups[key].sort(key=_position_key)
    return groups


# ---------------------------------------------------------------------------
# Batch submit
# ---------------------------------------------------------------------------

def submit_space_shortcuts(
    config: ConfluenceConfig,
    space_key: str,
    items: List[Dict[str, Optional[str]]],
    dry_run: bool = False,
) -> None:
    """
    Replace all shortcuts of `space_key` with `items`.
    """
    try:
        resolve_space_id(config, space_key)
    except ConfluenceError as e:
        raise ConfluenceError(f"Unable to resolve container space key '{space_key}': {e}") from e

    payload = {"spaceKey": space_key, "quickLinks": items}

    if dry_run:
        logging.info(f"DRY-RUN: would set {len(items)} shortcut(s) on space [{space_key}]")
        return

    resp = api_call(config, "POST", config.shortcut_batch_path, body=payload)
    if resp.status != 200:
        raise ConfluenceError(
            f"Failed to set shortcuts on space [{space_key}] ({resp.status}): {resp.body}"
        )
    logging.info(f"Set {len(items)} shortcut(s) on space [{space_key}]")


# ---------------------------------------------------------------------------
# Row processing
# ---------------------------------------------------------------------------

def process_shortcut_rows(
    config: ConfluenceConfig,
    rows: List[Dict[str, Optional[str]]],
    dry_run: bool = False,
) -> RunSummary:
    summary = RunSummary()

    normalized = []
    for idx, raw in enumerate(rows, start=1):
        row = {col: normalize_null(raw.get(col)) for col in SHORTCUT_COLUMNS}
        if not row["SPACE_KEY"]:
            logging.error(f"[row {idx}] Missing SPACE_KEY; skipped.")
            summary.skipped += 1
            continue
        normalized.append(row)

    groups = group_rows_by_space(normalized)
    if not groups:
        logging.info("No shortcut rows to import.")
        return summary

    for space_key, group in groups.items():
        logging.info(f"=== Space [{space_key}]: {len(group)} row(s) ===")

        items = []
        for row in group:
            try:
                items.append(build_shortcut(config, row))
            except ConfluenceError as e:
                logging.error(f"  [{space_key}] Skipping shortcut '{row['CUSTOM_TITLE'] or row['TITLE']}': {e}")
                summary.skipped += 1

        try:
            submit_space_shortcuts(config, space_key, items, dry_run=dry_run)
            summary.succeeded += 1
        except ConfluenceError as e:
            logging.error(f"  {e}")
            summary.failed += 1

    return summary


# ---------------------------------------------------------------------------
# Main
# ---------------------------------------------------------------------------

def parse_args(argv=None) -> argparse.Namespace:
    parser = argparse.ArgumentParser(
        description="Set Confluence Cloud space shortcuts from a CSV export. "
                    "Existing shortcuts of each listed space are overwritten."
    )
    add_common_arguments(parser)
    return parser.parse_args(argv)


def main(argv=None) -> int:
    args = parse_args(argv)
    setup_logging(args.log_file or "import_space_shortcuts.log")

    config = config_from_args(args)
    logging.info(f"Target site: {config.base_url}{' (dry-run)' if args.dry_run else ''}")

    rows = read_csv_rows(Path(args.csv_path), SHORTCUT_COLUMNS, has_header=args.header)
    logging.info(f"Read {len(rows)} row(s) from {args.csv_path}")

    summary = process_shortcut_rows(config, rows, dry_run=args.dry_run)

    print()
    print(summary.as_table("Spaces"))
    return 0


if __name__ == "__main__":
    sys.exit(main())
