"""
omnicost - Azure Cost Management provider

Queries daily actual usage costs for a subscription with the Cost
Management Query API, authenticating as a service principal.

Requirements:
- Service principal with Cost Management Reader on the subscription
- AZURE_TENANT_ID, AZURE_CLIENT_ID, AZURE_CLIENT_SECRET in the environment
"""
import logging
from datetime import datetime, timedelta, timezone
from typing import Any, List, Optional

from azure.identity import ClientSecretCredential
from azure.mgmt.costmanagement import CostManagementClient
from azure.mgmt.costmanagement.models import (
    QueryAggregation,
    QueryDataset,
    QueryDefinition,
    QueryGrouping,
    QueryTimePeriod,
)

from omnicost.config import AzureCredentials
from omnicost.constants import (
    AZURE_GRANULARITY,
    AZURE_GROUP_BY_DIMENSIONS,
    AZURE_QUERY_TYPE,
    AZURE_TIMEFRAME,
    DATE_FORMAT,
    DEFAULT_CURRENCY,
    GROUP_BY_REGION,
    PROVIDER_AZURE,
    PROVIDER_NAMES,
    SERVICE_TOTAL,
    SERVICE_UNKNOWN,
)
from omnicost.errors import ConfigurationError, ErrorClassifier, ErrorKind, ErrorRule, signature
from omnicost.models import CostRecord, FetchParams
from omnicost.provider import CostProvider
from omnicost.retry import RetryExecutor

logger = logging.getLogger(__name__)


# =============================================================================
# Error Classification
# =============================================================================

AZURE_ERROR_RULES = [
    ErrorRule(ErrorKind.THROTTLED, signature(
        status_codes=[429],
        messages=['TooManyRequests', '429'],
        ignore_case=True,
    )),
    ErrorRule(ErrorKind.UNAVAILABLE, signature(
        status_codes=[503],
        messages=['ServiceUnavailable', '503'],
        ignore_case=True,
    )),
    ErrorRule(ErrorKind.TIMEOUT, signature(
        status_codes=[504],
        messages=['RequestTimeout', 'GatewayTimeout', 'ETIMEDOUT', '504'],
        ignore_case=True,
    )),
    ErrorRule(ErrorKind.NETWORK_UNREACHABLE, signature(
        names=['ServiceRequestError'],
        messages=['NetworkError', 'ECONNREFUSED', 'ENOTFOUND'],
        ignore_case=True,
    )),
]

AZURE_CREDENTIAL_ERRORS = signature(
    names=['ClientAuthenticationError'],
    messages=[
        'AuthenticationError', 'InvalidAuthenticationToken',
        'UnauthorizedRequestError', 'SubscriptionNotFound',
    ],
    ignore_case=True,
)

classify_azure_error = ErrorClassifier(AZURE_ERROR_RULES)

# Column names the Query API uses for the date and the aggregated cost
USAGE_DATE_COLUMN = 'UsageDate'
COST_COLUMNS = ('totalCost', 'Cost', 'PreTaxCost')


def parse_usage_date(value: Any) -> str:
    """Convert the compact YYYYMMDD usage date (number or string) to YYYY-MM-DD."""
    text = str(int(value)) if isinstance(value, (int, float)) else str(value)
    if len(text) == 8 and text.isdigit():
        return f"{text[0:4]}-{text[4:6]}-{text[6:8]}"
    return text[:10]


class AzureCostProvider(CostProvider):
    """Cost provider backed by the Azure Cost Management Query API."""

    name = PROVIDER_NAMES[PROVIDER_AZURE]
    credential_errors = AZURE_CREDENTIAL_ERRORS

    def __init__(
        self,
        subscription_id: str,
        credentials: AzureCredentials,
        client: Optional[Any] = None,
        retry: Optional[RetryExecutor] = None,
    ):
        missing = credentials.missing
        if missing:
            raise ConfigurationError(
                f"Missing Azure credentials. Set {', '.join(missing)} in the environment."
            )

        self.subscription_id = subscription_id
        self.scope = f"/subscriptions/{subscription_id}"
        self.credentials = credentials
        self._client = client
        self.retry = retry or RetryExecutor(classify_azure_error, description=f"{self.name} request")

    @property
    def client(self):
        """Get or create the Cost Management client."""
        if self._client is None:
            credential = ClientSecretCredential(
                tenant_id=self.credentials.tenant_id,
                client_id=self.credentials.client_id,
                client_secret=self.credentials.client_secret,
            )
            self._client = CostManagementClient(credential)
        return self._client

    def validate_credentials(self) -> bool:
        now = datetime.now(timezone.utc)
        query = self._build_query(
            (now - timedelta(days=1)).strftime(DATE_FORMAT),
            now.strftime(DATE_FORMAT),
            None,
        )
        return self._check_credentials(lambda: self.retry.call(lambda: self._query(query)))

    def fetch_costs(self, params: FetchParams) -> List[CostRecord]:
        dimension = AZURE_GROUP_BY_DIMENSIONS.get(params.group_by) if params.group_by else None
        if params.group_by and not dimension:
            logger.debug(f"{params.group_by} grouping is not supported by Cost Management, querying totals")

        query = self._build_query(params.start_date, params.end_date, dimension)
        logger.debug(f"Querying {self.scope} from {params.start_date} to {params.end_date}")
        result = self.retry.call(lambda: self._query(query))

        records = self._normalize(result, dimension, params.group_by)
        logger.info(f"Fetched {len(records)} cost records from {self.name}")
        return records

    def _query(self, query: QueryDefinition):
        return self.client.query.usage(scope=self.scope, parameters=query)

    def _build_query(self, start_date: str, end_date: str, dimension: Optional[str]) -> QueryDefinition:
        from_date = datetime.strptime(start_date, DATE_FORMAT).replace(tzinfo=timezone.utc)
        to_date = datetime.strptime(end_date, DATE_FORMAT).replace(
            hour=23, minute=59, second=59, tzinfo=timezone.utc
        )

        grouping = [QueryGrouping(type="Dimension", name=dimension)] if dimension else None

        return QueryDefinition(
            type=AZURE_QUERY_TYPE,
            timeframe=AZURE_TIMEFRAME,
            time_period=QueryTimePeriod(from_property=from_date, to=to_date),
            dataset=QueryDataset(
                granularity=AZURE_GRANULARITY,
                aggregation={
                    "totalCost": QueryAggregation(name="Cost", function="Sum"),
                },
                grouping=grouping,
            ),
        )

    def _normalize(self, result, dimension: Optional[str], group_by: Optional[str]) -> List[CostRecord]:
        rows = getattr(result, 'rows', None) or []
        columns = [getattr(col, 'name', None) for col in (getattr(result, 'columns', None) or [])]

        if USAGE_DATE_COLUMN in columns:
            date_idx = columns.index(USAGE_DATE_COLUMN)
            cost_idx = next((columns.index(c) for c in COST_COLUMNS if c in columns), 0)
            dim_idx = columns.index(dimension) if dimension in columns else None
        else:
            # Positional layout: date, [dimension,] cost
            date_idx = 0
            dim_idx = 1 if dimension else None
            cost_idx = 2 if dimension else 1

        records = []
        for row in rows:
            if dimension:
                label = row[dim_idx] if dim_idx is not None else None
                service = str(label) if label else SERVICE_UNKNOWN
            else:
                service = SERVICE_TOTAL

            records.append(CostRecord(
                date=parse_usage_date(row[date_idx]),
                service=service,
                amount=float(row[cost_idx] or 0),
                currency=DEFAULT_CURRENCY,
                region=service if dimension and group_by == GROUP_BY_REGION else None,
            ))
        return records
