"""
omnicost - Datadog usage provider

Reads usage from the Datadog Usage Metering API:
- GET /api/v1/usage/summary for ungrouped, per-month usage by product
- GET /api/v1/usage/monthly-attribution when a tag breakdown is requested

Datadog reports usage counts, not money. Amounts are passed through
unpriced with a placeholder currency of USD.

Requirements:
- DD_API_KEY (or DATADOG_API_KEY) and DD_APP_KEY (or DATADOG_APP_KEY)
- An application key with the usage_read scope
"""
import logging
from datetime import datetime, timedelta, timezone
from numbers import Number
from typing import Any, Dict, List, Optional

import requests

from omnicost.config import DatadogCredentials
from omnicost.constants import (
    DATADOG_ATTRIBUTION_SERVICE,
    DATADOG_HTTP_TIMEOUT_SECONDS,
    DATADOG_MONTHLY_ATTRIBUTION_PATH,
    DATADOG_USAGE_FIELDS,
    DATADOG_USAGE_SUMMARY_PATH,
    DEFAULT_CURRENCY,
    PROVIDER_DATADOG,
    PROVIDER_NAMES,
)
from omnicost.errors import ErrorClassifier, ErrorKind, ErrorRule, ProviderError, signature
from omnicost.models import CostRecord, FetchParams
from omnicost.provider import CostProvider
from omnicost.retry import RetryExecutor
from omnicost.utils import tags_to_dict, to_iso_date, today_iso

logger = logging.getLogger(__name__)


# =============================================================================
# Error Classification
# =============================================================================

DATADOG_ERROR_RULES = [
    ErrorRule(ErrorKind.THROTTLED, signature(status_codes=[429], messages=['429'])),
    ErrorRule(ErrorKind.UNAVAILABLE, signature(status_codes=[503], messages=['503'])),
    ErrorRule(ErrorKind.NETWORK_UNREACHABLE, signature(messages=['ECONNRESET', 'Connection reset'])),
]

DATADOG_CREDENTIAL_ERRORS = signature(status_codes=[401, 403], messages=['401', '403'])

classify_datadog_error = ErrorClassifier(DATADOG_ERROR_RULES)


def month_of(value: str) -> str:
    """YYYY-MM-DD -> YYYY-MM"""
    return value[:7]


def attribution_cost(value: Any) -> float:
    """
    Usage figure for one monthly attribution value.

    Accepts a plain number, a mapping with a numeric `usage`, or a mapping
    whose first field holds a number or numeric string. Anything else is 0.
    """
    if isinstance(value, dict):
        usage = value.get('usage')
        if isinstance(usage, Number) and not isinstance(usage, bool):
            return float(usage)
        value = next(iter(value.values()), None)

    if isinstance(value, bool):
        return 0.0
    if isinstance(value, (Number, str)):
        try:
            return float(value)
        except ValueError:
            return 0.0
    return 0.0


class DatadogCostProvider(CostProvider):
    """Usage provider backed by the Datadog Usage Metering API."""

    name = PROVIDER_NAMES[PROVIDER_DATADOG]
    credential_errors = DATADOG_CREDENTIAL_ERRORS

    def __init__(
        self,
        credentials: DatadogCredentials,
        session: Optional[requests.Session] = None,
        retry: Optional[RetryExecutor] = None,
        timeout: int = DATADOG_HTTP_TIMEOUT_SECONDS,
    ):
        # Missing keys are left for the API to reject with 401/403
        self.credentials = credentials
        self.base_url = f"https://api.{credentials.site}"
        self.timeout = timeout
        self.session = session or requests.Session()  # Use a session for connection pooling
        self.session.headers.update({
            'DD-API-KEY': credentials.api_key,
            'DD-APPLICATION-KEY': credentials.app_key,
            'Accept': 'application/json',
        })
        self.retry = retry or RetryExecutor(classify_datadog_error, description=f"{self.name} request")

    def _get(self, path: str, params: Dict[str, str]) -> Dict[str, Any]:
        url = f"{self.base_url}{path}"
        logger.debug(f"GET {url} {params}")
        response = self.session.get(url, params=params, timeout=self.timeout)
        response.raise_for_status()  # Raise HTTPError for bad responses (4xx or 5xx)
        return response.json()

    def validate_credentials(self) -> bool:
        now = datetime.now(timezone.utc)
        params = {
            'start_month': (now - timedelta(days=31)).strftime('%Y-%m'),
            'end_month': now.strftime('%Y-%m'),
        }
        return self._check_credentials(lambda: self._get(DATADOG_USAGE_SUMMARY_PATH, params))

    def fetch_costs(self, params: FetchParams) -> List[CostRecord]:
        try:
            if params.group_by:
                records = self._fetch_attribution(params)
            else:
                records = self._fetch_summary(params)
        except Exception as e:
            raise ProviderError(
                f"Failed to fetch Datadog usage data: {e}", provider=self.name, original_error=e
            ) from e

        logger.info(f"Fetched {len(records)} usage records from {self.name}")
        return records

    def _fetch_summary(self, params: FetchParams) -> List[CostRecord]:
        query = {
            'start_month': month_of(params.start_date),
            'end_month': month_of(params.end_date),
            'include_org_details': 'true',
        }
        data = self.retry.call(lambda: self._get(DATADOG_USAGE_SUMMARY_PATH, query))

        records = []
        for summary in data.get('usage') or []:
            day = str(summary['date'])[:10] if summary.get('date') else today_iso()
            for field_name, label in DATADOG_USAGE_FIELDS:
                value = summary.get(field_name)
                if value and value > 0:
                    records.append(CostRecord(
                        date=day,
                        service=label,
                        amount=float(value),
                        currency=DEFAULT_CURRENCY,
                    ))
        return records

    def _fetch_attribution(self, params: FetchParams) -> List[CostRecord]:
        query = {
            'start_month': month_of(params.start_date),
            'end_month': month_of(params.end_date),
            'fields': '*',
            'tag_breakdown_keys': params.group_by.lower(),
        }
        data = self.retry.call(lambda: self._get(DATADOG_MONTHLY_ATTRIBUTION_PATH, query))

        records = []
        for item in data.get('usage') or []:
            values = item.get('values') or {}
            day = to_iso_date(item['month']) if item.get('month') else today_iso()
            tags = tags_to_dict(item.get('tags')) or None
            for value in values.values():
                cost = attribution_cost(value)
                if cost > 0:
                    records.append(CostRecord(
                        date=day,
                        service=DATADOG_ATTRIBUTION_SERVICE,
                        amount=cost,
                        currency=DEFAULT_CURRENCY,
                        tags=tags,
                    ))
        return records
