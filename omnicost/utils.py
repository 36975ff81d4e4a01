"""
Utility functions for omnicost.

Logging Level Standards:
------------------------
- ERROR: Failures that stop the run, rejected credentials
         "Invalid AWS Cost Explorer credentials: {e}"
- WARNING: Retried requests, empty results
           "Azure Cost Management request failed (attempt 1/3), retrying in 1s: {e}"
- INFO: Progress messages, record counts
        "Fetched 42 cost records from GCP BigQuery Billing Export"
- DEBUG: Request parameters and page-level detail
         "Fetching Cost Explorer page 2"
"""
import json
import logging
import sys
from contextlib import contextmanager
from datetime import date, datetime, timezone
from typing import Any, Dict, Iterator, Optional

from rich.console import Console

from .constants import DATE_FORMAT

logger = logging.getLogger(__name__)


def setup_logging(level: str = "INFO") -> logging.Logger:
    """
    Setup logging configuration with console output on stderr.

    stdout is reserved for the formatted report so it can be piped.

    Args:
        level: Logging level (DEBUG, INFO, WARNING, ERROR)

    Returns:
        Logger instance
    """
    numeric_level = getattr(logging, level.upper(), logging.INFO)

    formatter = logging.Formatter(
        '%(asctime)s - %(levelname)s - %(message)s',
        datefmt='%Y-%m-%d %H:%M:%S'
    )

    root_logger = logging.getLogger()
    root_logger.setLevel(numeric_level)

    # Clear existing handlers to avoid duplicates
    root_logger.handlers.clear()

    console_handler = logging.StreamHandler(sys.stderr)
    console_handler.setLevel(numeric_level)
    console_handler.setFormatter(formatter)
    root_logger.addHandler(console_handler)

    # Vendor SDKs are chatty at INFO
    for noisy in ('botocore', 'urllib3', 'azure', 'google'):
        logging.getLogger(noisy).setLevel(max(numeric_level, logging.WARNING))

    return logging.getLogger(__name__)


@contextmanager
def fetch_status(message: str, quiet: bool = False) -> Iterator[None]:
    """
    Show a spinner on stderr while a provider call is in flight.

    Falls back to a log line when stderr is not a TTY (e.g. under cron or
    when redirected), and prints nothing when quiet.
    """
    if quiet:
        yield
        return

    if not sys.stderr.isatty():
        logger.info(message)
        yield
        return

    console = Console(stderr=True)
    with console.status(message):
        yield


def parse_date(value: str) -> Optional[date]:
    """Parse a YYYY-MM-DD string, returning None if it is not a valid date."""
    try:
        parsed = datetime.strptime(value, DATE_FORMAT).date()
    except (TypeError, ValueError):
        return None
    # strptime accepts unpadded fields such as 2025-4-1
    if parsed.isoformat() != value:
        return None
    return parsed


def today_iso() -> str:
    """Current UTC date as YYYY-MM-DD."""
    return datetime.now(timezone.utc).strftime(DATE_FORMAT)


def to_iso_date(value: Any) -> str:
    """
    Render a vendor date value as a string.

    date/datetime objects become YYYY-MM-DD, ISO timestamps are cut to the
    date part, anything coarser (e.g. "2025-01") is passed through.
    """
    if isinstance(value, datetime):
        return value.date().isoformat()
    if isinstance(value, date):
        return value.isoformat()
    text = str(value)
    return text[:10] if len(text) > 10 and text[10] in ('T', ' ') else text


def tags_to_dict(tags: Any) -> Dict[str, str]:
    """
    Convert vendor label/tag structures to a flat string dictionary.

    Supports:
    - JSON strings of any format below
    - Mapping format: {"env": "prod"}
    - BigQuery label format: [{"key": "env", "value": "prod"}]
    - AWS format: [{"Key": "env", "Value": "prod"}]
    - Datadog format: ["env:prod", "team:web"]
    """
    if not tags:
        return {}

    if isinstance(tags, str):
        tags = json.loads(tags)
        if not tags:
            return {}

    if isinstance(tags, dict):
        return {str(k): _tag_value(v) for k, v in tags.items()}

    result: Dict[str, str] = {}
    if isinstance(tags, list):
        for tag in tags:
            if isinstance(tag, dict):
                key = tag.get('key', tag.get('Key'))
                if key:
                    result[str(key)] = _tag_value(tag.get('value', tag.get('Value', '')))
            elif isinstance(tag, str):
                key, sep, value = tag.partition(':')
                if sep and key and value:
                    result[key] = value
    return result


def _tag_value(value: Any) -> str:
    if value is None:
        return ''
    if isinstance(value, (list, tuple)):
        return ','.join(str(v) for v in value)
    return str(value)
