"""
Tests for the Azure Cost Management provider (azure_cost.py).

Covers:
- Missing service principal credentials
- Query construction (time period, grouping)
- Positional and named-column row decoding
- Retry of throttling and gateway errors
- Credential validation
"""
import os
import sys
from datetime import datetime, timezone
from unittest.mock import Mock

import pytest

# Add parent directory to path for imports
sys.path.insert(0, os.path.dirname(os.path.dirname(os.path.abspath(__file__))))

from azure_cost import AzureCostProvider, classify_azure_error, parse_usage_date
from omnicost.config import AzureCredentials
from omnicost.errors import ConfigurationError, ErrorKind
from omnicost.models import FetchParams
from omnicost.retry import RetryExecutor

CREDENTIALS = AzureCredentials(tenant_id='tenant', client_id='client', client_secret='secret')


class HttpResponseError(Exception):
    """Minimal stand-in for azure.core.exceptions.HttpResponseError."""

    def __init__(self, message, status_code=None):
        super().__init__(message)
        self.status_code = status_code


class ClientAuthenticationError(HttpResponseError):
    pass


def make_provider(client=None, sleep=None):
    retry = RetryExecutor(classify_azure_error, sleep=sleep or Mock())
    return AzureCostProvider('sub-123', CREDENTIALS, client=client or Mock(), retry=retry)


def make_client(rows, columns=None):
    client = Mock()
    result = Mock()
    result.rows = rows
    result.columns = None
    if columns:
        result.columns = []
        for name in columns:
            column = Mock()
            column.name = name
            result.columns.append(column)
    client.query.usage.return_value = result
    return client


# =============================================================================
# Construction Tests
# =============================================================================

class TestConstruction:
    """Tests for AzureCostProvider construction."""

    def test_missing_credentials(self):
        """Test any missing service principal value is a configuration error."""
        with pytest.raises(ConfigurationError, match='AZURE_CLIENT_SECRET'):
            AzureCostProvider('sub-123', AzureCredentials(tenant_id='t', client_id='c'))

    def test_scope(self):
        assert make_provider().scope == '/subscriptions/sub-123'


# =============================================================================
# Query Tests
# =============================================================================

class TestBuildQuery:
    """Tests for QueryDefinition construction."""

    def test_time_period_covers_whole_days(self):
        query = make_provider()._build_query('2024-01-01', '2024-01-31', None)

        assert query.type == 'Usage'
        assert query.timeframe == 'Custom'
        assert query.time_period.from_property == datetime(2024, 1, 1, tzinfo=timezone.utc)
        assert query.time_period.to == datetime(2024, 1, 31, 23, 59, 59, tzinfo=timezone.utc)
        assert query.dataset.granularity == 'Daily'
        assert query.dataset.aggregation['totalCost'].name == 'Cost'
        assert query.dataset.aggregation['totalCost'].function == 'Sum'
        assert not query.dataset.grouping

    def test_grouping(self):
        query = make_provider()._build_query('2024-01-01', '2024-01-31', 'ServiceName')

        assert len(query.dataset.grouping) == 1
        assert query.dataset.grouping[0].name == 'ServiceName'
        assert query.dataset.grouping[0].type == 'Dimension'

    def test_unsupported_dimension_queries_totals(self):
        client = make_client([[20240101, 5.0]])
        params = FetchParams(start_date='2024-01-01', end_date='2024-01-01', group_by='ACCOUNT')

        records = make_provider(client).fetch_costs(params)

        query = client.query.usage.call_args.kwargs['parameters']
        assert not query.dataset.grouping
        assert records[0].service == 'Total'


# =============================================================================
# Fetch Tests
# =============================================================================

class TestFetchCosts:
    """Tests for fetch_costs row decoding."""

    def test_grouped_positional(self):
        client = make_client([
            [20240115, 'Virtual Machines', 12.5],
            [20240115, None, 1],
        ])
        params = FetchParams(start_date='2024-01-01', end_date='2024-01-31', group_by='SERVICE')

        records = make_provider(client).fetch_costs(params)

        assert client.query.usage.call_args.kwargs['scope'] == '/subscriptions/sub-123'
        assert records[0].date == '2024-01-15'
        assert records[0].service == 'Virtual Machines'
        assert records[0].amount == 12.5
        assert records[0].currency == 'USD'
        assert records[1].service == 'Unknown'

    def test_ungrouped_positional(self):
        client = make_client([[20240102, 99.99]])
        params = FetchParams(start_date='2024-01-01', end_date='2024-01-31')

        records = make_provider(client).fetch_costs(params)

        assert len(records) == 1
        assert records[0].date == '2024-01-02'
        assert records[0].service == 'Total'
        assert records[0].amount == 99.99

    def test_named_columns(self):
        """Test columns are found by name when the result carries them."""
        client = make_client(
            [[7.5, 20240103, 'westeurope', 'EUR']],
            columns=['totalCost', 'UsageDate', 'ResourceLocation', 'Currency'],
        )
        params = FetchParams(start_date='2024-01-01', end_date='2024-01-31', group_by='REGION')

        records = make_provider(client).fetch_costs(params)

        assert records[0].date == '2024-01-03'
        assert records[0].service == 'westeurope'
        assert records[0].region == 'westeurope'
        assert records[0].amount == 7.5
        assert records[0].currency == 'USD'

    def test_empty_result(self):
        client = make_client([])
        params = FetchParams(start_date='2024-01-01', end_date='2024-01-31')

        assert make_provider(client).fetch_costs(params) == []

    def test_throttling_is_retried(self):
        client = make_client([[20240101, 1.0]])
        result = client.query.usage.return_value
        client.query.usage.side_effect = [HttpResponseError('Too many requests', status_code=429), result]
        sleep = Mock()
        params = FetchParams(start_date='2024-01-01', end_date='2024-01-01')

        records = make_provider(client, sleep=sleep).fetch_costs(params)

        assert len(records) == 1
        assert client.query.usage.call_count == 2
        sleep.assert_called_once_with(1.0)


class TestParseUsageDate:
    """Tests for parse_usage_date."""

    def test_number(self):
        assert parse_usage_date(20240131) == '2024-01-31'

    def test_string(self):
        assert parse_usage_date('20240131') == '2024-01-31'

    def test_float(self):
        assert parse_usage_date(20240131.0) == '2024-01-31'


# =============================================================================
# Classification and Validation Tests
# =============================================================================

class TestClassifyAzureError:
    """Tests for Azure error classification."""

    @pytest.mark.parametrize('message,kind', [
        ('(TooManyRequests) slow down', ErrorKind.THROTTLED),
        ('(ServiceUnavailable) try later', ErrorKind.UNAVAILABLE),
        ('(GatewayTimeout) upstream', ErrorKind.TIMEOUT),
        ('getaddrinfo ENOTFOUND management.azure.com', ErrorKind.NETWORK_UNREACHABLE),
        ('(BadRequest) invalid scope', ErrorKind.OTHER),
    ])
    def test_messages(self, message, kind):
        assert classify_azure_error(HttpResponseError(message)) == kind

    def test_case_insensitive(self):
        assert classify_azure_error(HttpResponseError('gatewaytimeout')) == ErrorKind.TIMEOUT

    def test_status_codes(self):
        assert classify_azure_error(HttpResponseError('error', status_code=504)) == ErrorKind.TIMEOUT


class TestValidateCredentials:
    """Tests for validate_credentials."""

    def test_valid(self):
        client = make_client([])

        assert make_provider(client).validate_credentials() is True

        query = client.query.usage.call_args.kwargs['parameters']
        assert (query.time_period.to - query.time_period.from_property).days == 1

    def test_authentication_failure(self):
        client = Mock()
        client.query.usage.side_effect = ClientAuthenticationError('Authentication failed')

        assert make_provider(client).validate_credentials() is False

    def test_subscription_not_found(self):
        client = Mock()
        client.query.usage.side_effect = HttpResponseError('(SubscriptionNotFound) not found', status_code=404)

        assert make_provider(client).validate_credentials() is False

    def test_other_errors_propagate(self):
        client = Mock()
        client.query.usage.side_effect = HttpResponseError('(BadRequest) invalid', status_code=400)

        with pytest.raises(HttpResponseError):
            make_provider(client).validate_credentials()
