"""
omnicost - GCP BigQuery billing export provider

Aggregates daily costs from the standard Cloud Billing export table
(`gcp_billing_export_v1_*`) in BigQuery. Credentials come from Application
Default Credentials.

Requirements:
- Billing export to BigQuery enabled
- roles/bigquery.dataViewer on the dataset and roles/bigquery.jobUser on the project
"""
import logging
import re
from typing import Any, List, Optional

from google.cloud import bigquery

from omnicost.constants import (
    DEFAULT_CURRENCY,
    GCP_BILLING_TABLE_PATTERN,
    GCP_GROUP_BY_COLUMNS,
    PROVIDER_GCP,
    PROVIDER_NAMES,
    SERVICE_TOTAL,
    SERVICE_UNKNOWN,
)
from omnicost.errors import ConfigurationError, ErrorClassifier, ErrorKind, ErrorRule, signature
from omnicost.models import CostRecord, FetchParams
from omnicost.provider import CostProvider
from omnicost.retry import RetryExecutor
from omnicost.utils import parse_date, tags_to_dict, to_iso_date

logger = logging.getLogger(__name__)

# BigQuery identifiers are interpolated into SQL, so validate them first
PROJECT_ID_PATTERN = re.compile(r'^(?:[a-z0-9.\-]+:)?[a-z][a-z0-9\-]{4,28}[a-z0-9]$')
DATASET_PATTERN = re.compile(r'^[A-Za-z_][A-Za-z0-9_]{0,1023}$')


# =============================================================================
# Error Classification
# =============================================================================

GCP_ERROR_RULES = [
    ErrorRule(ErrorKind.THROTTLED, signature(
        messages=['rateLimitExceeded'],
        ignore_case=True,
    )),
    ErrorRule(ErrorKind.UNAVAILABLE, signature(
        messages=['backendError', 'internalError', '503', '500'],
        ignore_case=True,
    )),
    ErrorRule(ErrorKind.TIMEOUT, signature(
        messages=['timeout', 'ETIMEDOUT'],
        ignore_case=True,
    )),
    ErrorRule(ErrorKind.NETWORK_UNREACHABLE, signature(
        messages=['ECONNREFUSED', 'ENOTFOUND'],
        ignore_case=True,
    )),
]

GCP_CREDENTIAL_ERRORS = signature(
    names=['DefaultCredentialsError', 'NotFound', 'Forbidden', 'PermissionDenied', 'Unauthenticated'],
    messages=['Not found', 'Permission denied', 'Could not load the default credentials'],
    ignore_case=True,
)

classify_gcp_error = ErrorClassifier(GCP_ERROR_RULES)


class GCPCostProvider(CostProvider):
    """Cost provider backed by the BigQuery billing export."""

    name = PROVIDER_NAMES[PROVIDER_GCP]
    credential_errors = GCP_CREDENTIAL_ERRORS

    def __init__(
        self,
        project_id: str,
        dataset: str,
        client: Optional[Any] = None,
        retry: Optional[RetryExecutor] = None,
    ):
        if not project_id or not PROJECT_ID_PATTERN.match(project_id):
            raise ConfigurationError(f"Invalid GCP project ID: {project_id}")
        if not dataset or not DATASET_PATTERN.match(dataset):
            raise ConfigurationError(f"Invalid BigQuery dataset name: {dataset}")

        self.project_id = project_id
        self.dataset = dataset
        self._client = client
        self.retry = retry or RetryExecutor(classify_gcp_error, description=f"{self.name} query")

    @property
    def client(self):
        """Get or create the BigQuery client. Created lazily so ADC errors surface in validation."""
        if self._client is None:
            self._client = bigquery.Client(project=self.project_id)
        return self._client

    @property
    def table(self) -> str:
        return f"`{self.project_id}.{self.dataset}.{GCP_BILLING_TABLE_PATTERN}`"

    def validate_credentials(self) -> bool:
        query = f"SELECT 1 FROM {self.table} LIMIT 1"
        return self._check_credentials(
            lambda: self.retry.call(lambda: list(self.client.query(query).result()))
        )

    def build_query(self, group_by: Optional[str]) -> str:
        """SQL aggregating cost per day, group and currency."""
        column = GCP_GROUP_BY_COLUMNS.get(group_by) if group_by else None
        service_expr = column or f"'{SERVICE_TOTAL}'"

        return f"""
        SELECT
            DATE(usage_start_time) AS date,
            {service_expr} AS service,
            SUM(cost) AS amount,
            currency,
            TO_JSON_STRING(labels) AS labels
        FROM {self.table}
        WHERE
            DATE(usage_start_time) >= @start_date
            AND DATE(usage_start_time) <= @end_date
        GROUP BY date, service, currency, labels
        ORDER BY date, service
        """

    def fetch_costs(self, params: FetchParams) -> List[CostRecord]:
        query = self.build_query(params.group_by)
        job_config = bigquery.QueryJobConfig(
            query_parameters=[
                bigquery.ScalarQueryParameter("start_date", "DATE", parse_date(params.start_date)),
                bigquery.ScalarQueryParameter("end_date", "DATE", parse_date(params.end_date)),
            ]
        )

        logger.debug(f"Querying {self.table} from {params.start_date} to {params.end_date}")
        rows = self.retry.call(lambda: list(self.client.query(query, job_config=job_config).result()))

        records = [self.normalize_row(row) for row in rows]
        logger.info(f"Fetched {len(records)} cost records from {self.name}")
        return records

    @staticmethod
    def normalize_row(row: Any) -> CostRecord:
        """Map one result row (BigQuery Row or plain dict) to a CostRecord."""
        service = row.get('service') or SERVICE_UNKNOWN
        return CostRecord(
            date=to_iso_date(row.get('date')),
            service=service,
            amount=float(row.get('amount') or 0),
            currency=row.get('currency') or DEFAULT_CURRENCY,
            tags=tags_to_dict(row.get('labels')),
        )
