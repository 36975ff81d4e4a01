"""
omnicost - AWS Cost Explorer provider

Fetches daily unblended costs with GetCostAndUsage, following NextPageToken
until every page has been read. Credentials come from the standard boto3
chain (environment, shared config/profile, instance role).

Cost Explorer charges $0.01 per request, including each page.
"""
import logging
from datetime import timedelta
from typing import Any, Dict, List, Optional

import boto3

from omnicost.constants import (
    AWS_COST_METRIC,
    AWS_DEFAULT_REGION,
    AWS_GRANULARITY,
    AWS_GROUP_BY_KEYS,
    DEFAULT_CURRENCY,
    GROUP_BY_ACCOUNT,
    GROUP_BY_REGION,
    GROUP_BY_SERVICE,
    GROUP_BY_TAG,
    PROVIDER_AWS,
    PROVIDER_NAMES,
    SERVICE_TOTAL,
)
from omnicost.errors import ErrorClassifier, ErrorKind, ErrorRule, signature
from omnicost.models import CostRecord, FetchParams
from omnicost.provider import CostProvider
from omnicost.retry import RetryExecutor
from omnicost.utils import parse_date

logger = logging.getLogger(__name__)


# =============================================================================
# Error Classification
# =============================================================================

AWS_ERROR_RULES = [
    ErrorRule(ErrorKind.THROTTLED, signature(
        names=['ThrottlingException', 'TooManyRequestsException'],
    )),
    ErrorRule(ErrorKind.UNAVAILABLE, signature(
        names=['ServiceUnavailable'],
    )),
    ErrorRule(ErrorKind.TIMEOUT, signature(
        names=['RequestTimeout', 'RequestTimeoutException', 'ReadTimeoutError', 'ConnectTimeoutError'],
        messages=['timeout'],
    )),
    ErrorRule(ErrorKind.NETWORK_UNREACHABLE, signature(
        names=['NetworkingError', 'EndpointConnectionError', 'ConnectionClosedError'],
        messages=['ECONNREFUSED'],
    )),
]

AWS_CREDENTIAL_ERRORS = signature(
    names=[
        'UnrecognizedClientException', 'CredentialsError', 'NoCredentialsError',
        'PartialCredentialsError', 'InvalidClientTokenId', 'ExpiredToken',
    ],
    messages=['Could not load credentials', 'Unable to locate credentials'],
)

classify_aws_error = ErrorClassifier(AWS_ERROR_RULES)


class AWSCostProvider(CostProvider):
    """Cost provider backed by AWS Cost Explorer."""

    name = PROVIDER_NAMES[PROVIDER_AWS]
    credential_errors = AWS_CREDENTIAL_ERRORS

    def __init__(
        self,
        account_id: Optional[str] = None,
        region: str = AWS_DEFAULT_REGION,
        profile: Optional[str] = None,
        session: Optional[Any] = None,
        retry: Optional[RetryExecutor] = None,
    ):
        """
        Args:
            account_id: Linked account to restrict costs to. All accounts
                visible to the caller when omitted.
            region: Region for the Cost Explorer endpoint.
            profile: AWS profile name for the boto3 session.
            session: Optional pre-built boto3 session.
            retry: Optional retry executor (tests inject one with a fake sleep).
        """
        self.account_id = account_id
        self.region = region
        self.profile = profile
        self._session = session
        self._ce_client = None
        self._sts_client = None
        self.retry = retry or RetryExecutor(classify_aws_error, description=f"{self.name} request")

    @property
    def session(self):
        """Get or create the boto3 session."""
        if self._session is None:
            self._session = boto3.Session(profile_name=self.profile)
        return self._session

    @property
    def ce_client(self):
        """Get or create Cost Explorer client."""
        if self._ce_client is None:
            self._ce_client = self.session.client('ce', region_name=self.region)
        return self._ce_client

    @property
    def sts_client(self):
        """Get or create STS client."""
        if self._sts_client is None:
            self._sts_client = self.session.client('sts', region_name=self.region)
        return self._sts_client

    def validate_credentials(self) -> bool:
        return self._check_credentials(
            lambda: self.retry.call(lambda: self.sts_client.get_caller_identity())
        )

    def fetch_costs(self, params: FetchParams) -> List[CostRecord]:
        request = self._build_request(params)
        dimension = self._group_dimension(params.group_by)

        records: List[CostRecord] = []
        next_token: Optional[str] = None
        page = 0

        while True:
            page += 1
            kwargs = dict(request)
            if next_token:
                kwargs['NextPageToken'] = next_token

            logger.debug(f"Fetching Cost Explorer page {page}")
            response = self.retry.call(lambda: self.ce_client.get_cost_and_usage(**kwargs))

            for result in response.get('ResultsByTime', []):
                records.extend(self._normalize_result(result, dimension))

            next_token = response.get('NextPageToken')
            if not next_token:
                break

        logger.info(f"Fetched {len(records)} cost records from {self.name} ({page} page(s))")
        return records

    def _group_dimension(self, group_by: Optional[str]) -> Optional[str]:
        """Requested dimension, or None when ungrouped. Unsupported ones fall back to SERVICE."""
        if not group_by:
            return None
        if group_by not in AWS_GROUP_BY_KEYS:
            logger.debug(f"{group_by} grouping is not supported by Cost Explorer, using SERVICE")
            return GROUP_BY_SERVICE
        return group_by

    def _build_request(self, params: FetchParams) -> Dict[str, Any]:
        # Cost Explorer's End is exclusive; ours is inclusive
        end = parse_date(params.end_date)
        end_exclusive = (end + timedelta(days=1)).isoformat() if end else params.end_date

        request: Dict[str, Any] = {
            'TimePeriod': {'Start': params.start_date, 'End': end_exclusive},
            'Granularity': AWS_GRANULARITY,
            'Metrics': [AWS_COST_METRIC],
        }

        dimension = self._group_dimension(params.group_by)
        if dimension == GROUP_BY_TAG:
            tag_key = params.filters.get('tag_key', AWS_GROUP_BY_KEYS[GROUP_BY_TAG])
            request['GroupBy'] = [{'Type': 'TAG', 'Key': tag_key}]
        elif dimension:
            request['GroupBy'] = [{'Type': 'DIMENSION', 'Key': AWS_GROUP_BY_KEYS[dimension]}]

        if self.account_id:
            request['Filter'] = {
                'Dimensions': {'Key': 'LINKED_ACCOUNT', 'Values': [self.account_id]}
            }

        return request

    def _normalize_result(self, result: Dict[str, Any], dimension: Optional[str]) -> List[CostRecord]:
        """Turn one ResultsByTime bucket into records."""
        day = result['TimePeriod']['Start']

        if not dimension:
            metric = result.get('Total', {}).get(AWS_COST_METRIC, {})
            return [CostRecord(
                date=day,
                service=SERVICE_TOTAL,
                amount=float(metric.get('Amount', 0)),
                currency=metric.get('Unit') or DEFAULT_CURRENCY,
            )]

        records = []
        for group in result.get('Groups', []):
            key = group['Keys'][0]
            metric = group.get('Metrics', {}).get(AWS_COST_METRIC, {})
            records.append(CostRecord(
                date=day,
                service=key,
                amount=float(metric.get('Amount', 0)),
                currency=metric.get('Unit') or DEFAULT_CURRENCY,
                region=key if dimension == GROUP_BY_REGION else None,
                account=key if dimension == GROUP_BY_ACCOUNT else None,
            ))
        return records
