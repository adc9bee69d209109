#!/usr/bin/env python3
"""
confluence_common.py

Shared helpers for the Confluence Cloud import scripts:

  - ConfluenceConfig   domain + credentials, passed to every API helper
  - load_ini / config_from_ini
                       read url/username/pat from an INI section, same layout
                       as jira_config.ini
  - build_auth_headers Basic auth headers for email + API token
  - send_request       single-attempt HTTP call that never raises; callers
                       branch on ApiResult.status
  - normalize_null     map database NULL markers to None
  - read_csv_rows      read a legacy CSV export with or without a header row
"""

import argparse
import base64
import configparser
import csv
import getpass
import json
import logging
import sys
from dataclasses import dataclass
from pathlib import Path
from typing import Any, Dict, List, Optional

import requests
import urllib3
from tabulate import tabulate

# None leaves the timeout to requests
DEFAULT_TIMEOUT = None
DEFAULT_SHORTCUT_BATCH_PATH = "/wiki/rest/ia/1.0/link/batch"

# Page bodies can be far larger than the csv module's 128k default
CSV_FIELD_SIZE_LIMIT = 16 * 1024 * 1024

NULL_MARKERS = ("", "\\N", "NULL")

LOG_FORMAT = "%(asctime)s | %(levelname)-8s | %(message)s"


class ConfluenceError(RuntimeError):
    """Raised when a lookup or write against Confluence fails."""


# ---------------------------------------------------------------------------
# Config & auth helpers
# ---------------------------------------------------------------------------

def normalize_domain(domain: str) -> str:
    """
    Normalize a domain or site URL to https://<host> without /wiki.
    Examples:
      acme.atlassian.net              -> https://acme.atlassian.net
      https://acme.atlassian.net/wiki -> https://acme.atlassian.net
    """
    url = (domain or "").strip().rstrip("/")
    if not url:
        return url
    if not url.lower().startswith(("http://", "https://")):
        url = "https://" + url
    if url.endswith("/wiki"):
        url = url[: -len("/wiki")]
    return url


def basic_auth(email: str, token: str) -> str:
    s = f"{email}:{token}".encode("utf-8")
    return base64.b64encode(s).decode("utf-8")


def build_auth_headers(email: str, api_token: str) -> Dict[str, str]:
    return {
        "Content-Type": "application/json",
        "Accept": "application/json",
        "Authorization": f"Basic {basic_auth(email, api_token)}",
    }


@dataclass
class ConfluenceConfig:
    domain: str
    email: str
    api_token: str
    verify_ssl: bool = True
    timeout: Optional[float] = DEFAULT_TIMEOUT
    shortcut_batch_path: str = DEFAULT_SHORTCUT_BATCH_PATH

    @property
    def base_url(self) -> str:
        return normalize_domain(self.domain)

    @property
    def headers(self) -> Dict[str, str]:
        return build_auth_headers(self.email, self.api_token)

    def url(self, path: str) -> str:
        return f"{self.base_url}/{path.lstrip('/')}"


def load_ini(path: str) -> configparser.ConfigParser:
    cfg = configparser.ConfigParser()
    if not Path(path).is_file():
        raise FileNotFoundError(f"Config file '{path}' not found.")
    cfg.read(path, encoding="utf-8")
    if not cfg.sections():
        raise ConfluenceError(f"No sections found in '{path}'.")
    return cfg


def config_from_ini(cfg: configparser.ConfigParser, section: str) -> Dict[str, str]:
    """
    Pull connection settings out of one INI section. Accepts both the
    jira_config.ini names (url, username, pat) and email/token aliases.
    """
    if section not in cfg:
        raise ConfluenceError(
            f"Section [{section}] not found (available: {', '.join(cfg.sections())})."
        )
    sec = cfg[section]
    return {
        "domain": sec.get("url", fallback="") or sec.get("domain", fallback=""),
        "email": sec.get("username", fallback="") or sec.get("email", fallback=""),
        "api_token": sec.get("pat", fallback="") or sec.get("token", fallback=""),
        "shortcut_batch_path": sec.get("shortcut_batch_path", fallback=""),
    }


# ---------------------------------------------------------------------------
# HTTP
# ---------------------------------------------------------------------------

@dataclass
class ApiResult:
    """Outcome of one HTTP call. status is 0 when no response was received."""
    status: int
    body: str
    error: Optional[Exception] = None

    @property
    def ok(self) -> bool:
        return self.status == 200

    def json(self) -> Any:
        if not self.body or not self.body.strip():
            return {}
        return json.loads(self.body)


def send_request(
    url: str,
    method: str,
    headers: Dict[str, str],
    body: Optional[Any] = None,
    params: Optional[Dict[str, Any]] = None,
    verify: bool = True,
    timeout: Optional[float] = DEFAULT_TIMEOUT,
) -> ApiResult:
    """
    One request, no retries. HTTP error statuses come back as values and
    transport failures come back as status 0 with the error text as body.
    """
    try:
        resp = requests.request(
            method=method,
            url=url,
            headers=headers,
            params=params,
            json=body,
            timeout=timeout,
            verify=verify,
        )
    except requests.RequestException as e:
        return ApiResult(status=0, body=str(e), error=e)

    return ApiResult(status=resp.status_code, body=resp.text)


def api_call(
    config: ConfluenceConfig,
    method: str,
    path: str,
    body: Optional[Any] = None,
    params: Optional[Dict[str, Any]] = None,
) -> ApiResult:
    return send_request(
        config.url(path),
        method,
        config.headers,
        body=body,
        params=params,
        verify=config.verify_ssl,
        timeout=config.timeout,
    )


# ---------------------------------------------------------------------------
# CSV Handling
# ---------------------------------------------------------------------------

def normalize_null(value: Optional[str]) -> Optional[str]:
    if value is None or value in NULL_MARKERS:
        return None
    return value


def normalize_header_map(headers) -> Dict[str, str]:
    """
    Build a mapping from uppercased header name to original header name.
    """
    return {h.strip().upper(): h for h in headers if h is not None}


def read_csv_rows(csv_path: Path, columns: List[str], has_header: bool = False) -> List[Dict[str, Optional[str]]]:
    """
    Read the export into dicts keyed by the canonical column names, with
    every cell passed through normalize_null.

    Without a header the columns are taken positionally. With a header the
    names are matched case-insensitively and every column in `columns` must
    be present.
    """
    csv_path = Path(csv_path)
    csv.field_size_limit(CSV_FIELD_SIZE_LIMIT)

    rows: List[Dict[str, Optional[str]]] = []
    with csv_path.open(newline="", encoding="utf-8-sig") as f:
        reader = csv.reader(f, delimiter=",", quotechar='"')

        if has_header:
            header = next(reader, None)
            if not header:
                raise ConfluenceError(f"CSV '{csv_path}' has no header row.")
            header_map = normalize_header_map(header)
            missing = [c for c in columns if c not in header_map]
            if missing:
                raise ConfluenceError(
                    f"CSV '{csv_path}' is missing column(s): {', '.join(missing)}"
                )
            positions = [header.index(header_map[c]) for c in columns]
        else:
            positions = list(range(len(columns)))

        for raw in reader:
            if not raw or all(not cell.strip() for cell in raw):
                continue
            row = {}
            for col, pos in zip(columns, positions):
                row[col] = normalize_null(raw[pos] if pos < len(raw) else None)
            rows.append(row)

    return rows


# ---------------------------------------------------------------------------
# Run summary
# ---------------------------------------------------------------------------

@dataclass
class RunSummary:
    succeeded: int = 0
    failed: int = 0
    skipped: int = 0

    def as_table(self, unit: str) -> str:
        rows = [
            [f"{unit} succeeded", self.succeeded],
            [f"{unit} failed", self.failed],
            ["Rows skipped", self.skipped],
        ]
        return tabulate(rows, headers=["Result", "Count"], tablefmt="grid")


# ---------------------------------------------------------------------------
# Logging & CLI
# ---------------------------------------------------------------------------

def setup_logging(log_file: Optional[str] = None, level: int = logging.INFO) -> None:
    handlers: List[logging.Handler] = [logging.StreamHandler(sys.stdout)]
    if log_file:
        handlers.append(logging.FileHandler(log_file, mode="w", encoding="utf-8"))
    logging.basicConfig(level=level, format=LOG_FORMAT, handlers=handlers, force=True)


def add_common_arguments(parser: argparse.ArgumentParser) -> None:
    parser.add_argument("csv_path", help="Path to the CSV export")
    parser.add_argument("--header", action="store_true",
                        help="CSV has a header row (otherwise the fixed column order is used)")
    parser.add_argument("--domain", help="Confluence site, e.g. acme.atlassian.net")
    parser.add_argument("--email", help="Atlassian account email")
    parser.add_argument("--token", help="Atlassian API token")
    parser.add_argument("--config", help="INI file with url/username/pat sections (e.g. jira_config.ini)")
    parser.add_argument("--instance", help="Section of --config to use")
    parser.add_argument("--dry-run", action="store_true",
                        help="Run lookups but do not write anything to Confluence")
    parser.add_argument("--insecure", action="store_true",
                        help="Disable TLS certificate verification")
    parser.add_argument("--log-file", help="Log file path")


def config_from_args(args: argparse.Namespace) -> ConfluenceConfig:
    """
    Build a ConfluenceConfig from command line values, falling back to the
    INI section named by --config/--instance, then to a getpass prompt for
    the token. Exits with status 2 when domain or email are still missing.
    """
    settings = {"domain": "", "email": "", "api_token": "", "shortcut_batch_path": ""}
    if args.config:
        cfg = load_ini(args.config)
        section = args.instance or cfg.sections()[0]
        settings.update(config_from_ini(cfg, section))
        logging.info(f"Using instance [{section}] from {args.config}")

    domain = args.domain or settings["domain"]
    email = args.email or settings["email"]
    token = args.token or settings["api_token"]

    missing = [name for name, val in (("--domain", domain), ("--email", email)) if not val]
    if missing:
        logging.error(f"Missing required setting(s): {', '.join(missing)}")
        sys.exit(2)

    if not token:
        token = getpass.getpass(f"API token for '{email}': ")
        if not token:
            logging.error("Missing required setting: --token")
            sys.exit(2)

    if args.insecure:
        urllib3.disable_warnings(urllib3.exceptions.InsecureRequestWarning)

    return ConfluenceConfig(
        domain=domain,
        email=email,
        api_token=token,
        verify_ssl=not args.insecure,
        shortcut_batch_path=settings["shortcut_batch_path"] or DEFAULT_SHORTCUT_BATCH_PATH,
    )
