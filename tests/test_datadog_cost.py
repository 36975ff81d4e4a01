"""
Tests for the Datadog usage provider (datadog_cost.py).

Covers:
- Session headers and site URL
- Usage summary normalization (labels, zero-field exclusion)
- Monthly attribution normalization
- Error wrapping and retry
- Credential validation
"""
import os
import sys
from unittest.mock import Mock

import pytest
import requests

# Add parent directory to path for imports
sys.path.insert(0, os.path.dirname(os.path.dirname(os.path.abspath(__file__))))

from datadog_cost import DatadogCostProvider, attribution_cost, classify_datadog_error
from omnicost.config import DatadogCredentials
from omnicost.errors import ErrorKind, ProviderError
from omnicost.models import FetchParams
from omnicost.retry import RetryExecutor

CREDENTIALS = DatadogCredentials(api_key='api-key', app_key='app-key', site='datadoghq.eu')


def http_error(status_code):
    response = Mock(status_code=status_code)
    return requests.HTTPError(f"{status_code} Client Error", response=response)


def make_session(*payloads):
    session = Mock()
    session.headers = {}
    responses = []
    for payload in payloads:
        if isinstance(payload, Exception):
            responses.append(payload)
        else:
            response = Mock()
            response.json.return_value = payload
            responses.append(response)
    session.get.side_effect = responses
    return session


def make_provider(session, sleep=None):
    retry = RetryExecutor(classify_datadog_error, sleep=sleep or Mock())
    return DatadogCostProvider(CREDENTIALS, session=session, retry=retry)


SUMMARY_PARAMS = FetchParams(start_date='2024-01-01', end_date='2024-02-15')


# =============================================================================
# Transport Tests
# =============================================================================

class TestTransport:
    """Tests for session configuration."""

    def test_headers(self):
        session = make_session()
        make_provider(session)

        assert session.headers['DD-API-KEY'] == 'api-key'
        assert session.headers['DD-APPLICATION-KEY'] == 'app-key'

    def test_summary_request(self):
        session = make_session({'usage': []})

        make_provider(session).fetch_costs(SUMMARY_PARAMS)

        args, kwargs = session.get.call_args
        assert args[0] == 'https://api.datadoghq.eu/api/v1/usage/summary'
        assert kwargs['params'] == {
            'start_month': '2024-01',
            'end_month': '2024-02',
            'include_org_details': 'true',
        }
        assert kwargs['timeout'] == 60


# =============================================================================
# Fetch Tests
# =============================================================================

class TestUsageSummary:
    """Tests for ungrouped usage summary normalization."""

    def test_zero_fields_excluded(self):
        """Test only present, non-zero fields produce records."""
        session = make_session({'usage': [{
            'date': '2024-01-01T00:00:00+00:00',
            'apm_host_top99p': 10,
            'infra_host_top99p': 0,
        }]})

        records = make_provider(session).fetch_costs(SUMMARY_PARAMS)

        assert len(records) == 1
        assert records[0].service == 'APM Hosts'
        assert records[0].amount == 10.0
        assert records[0].date == '2024-01-01'
        assert records[0].currency == 'USD'

    def test_all_labels(self):
        session = make_session({'usage': [{
            'date': '2024-01-01',
            'apm_host_top99p': 1,
            'ingested_events_bytes_sum': 2,
            'indexed_events_count_sum': 3,
            'infra_host_top99p': 4,
            'synthetics_check_calls_count_sum': 5,
            'rum_total_session_count_sum': 6,
        }]})

        records = make_provider(session).fetch_costs(SUMMARY_PARAMS)

        assert [r.service for r in records] == [
            'APM Hosts', 'APM Traces', 'Logs', 'Infrastructure Hosts', 'Synthetics', 'RUM Sessions',
        ]
        assert [r.amount for r in records] == [1, 2, 3, 4, 5, 6]

    def test_missing_date_uses_today(self, monkeypatch):
        monkeypatch.setattr('datadog_cost.today_iso', lambda: '2024-03-01')
        session = make_session({'usage': [{'infra_host_top99p': 3}]})

        records = make_provider(session).fetch_costs(SUMMARY_PARAMS)

        assert records[0].date == '2024-03-01'

    def test_empty_usage(self):
        session = make_session({})
        assert make_provider(session).fetch_costs(SUMMARY_PARAMS) == []


class TestMonthlyAttribution:
    """Tests for grouped monthly attribution normalization."""

    def test_attribution_request(self):
        session = make_session({'usage': []})
        params = FetchParams(start_date='2024-01-01', end_date='2024-01-31', group_by='SERVICE')

        make_provider(session).fetch_costs(params)

        args, kwargs = session.get.call_args
        assert args[0] == 'https://api.datadoghq.eu/api/v1/usage/monthly-attribution'
        assert kwargs['params']['fields'] == '*'
        assert kwargs['params']['tag_breakdown_keys'] == 'service'

    def test_attribution_records(self):
        session = make_session({'usage': [{
            'month': '2024-01',
            'tags': {'service': ['web']},
            'values': {'api_usage': 100, 'apm_host_usage': 0, 'custom': {'usage': 7}},
        }]})
        params = FetchParams(start_date='2024-01-01', end_date='2024-01-31', group_by='SERVICE')

        records = make_provider(session).fetch_costs(params)

        assert len(records) == 2
        assert all(r.service == 'Datadog Usage' for r in records)
        assert [r.amount for r in records] == [100.0, 7.0]
        assert records[0].date == '2024-01'
        assert records[0].tags == {'service': 'web'}


class TestAttributionCost:
    """Tests for attribution_cost."""

    def test_number(self):
        assert attribution_cost(12) == 12.0

    def test_nested_usage(self):
        assert attribution_cost({'usage': 3.5, 'other': 9}) == 3.5

    def test_first_field(self):
        assert attribution_cost({'count': '4.25', 'other': 9}) == 4.25

    def test_not_numeric(self):
        assert attribution_cost({'name': 'web'}) == 0.0
        assert attribution_cost(None) == 0.0
        assert attribution_cost(True) == 0.0


# =============================================================================
# Error Tests
# =============================================================================

class TestErrors:
    """Tests for retry and error wrapping."""

    def test_errors_are_wrapped(self):
        session = make_session(http_error(400))

        with pytest.raises(ProviderError, match='Failed to fetch Datadog usage data: 400 Client Error') as exc_info:
            make_provider(session).fetch_costs(SUMMARY_PARAMS)

        assert isinstance(exc_info.value.original_error, requests.HTTPError)
        assert session.get.call_count == 1

    def test_rate_limit_is_retried(self):
        sleep = Mock()
        session = make_session(http_error(429), http_error(503), {'usage': [{'date': '2024-01-01', 'infra_host_top99p': 1}]})

        records = make_provider(session, sleep=sleep).fetch_costs(SUMMARY_PARAMS)

        assert len(records) == 1
        assert session.get.call_count == 3
        assert [c.args[0] for c in sleep.call_args_list] == [1.0, 2.0]

    def test_exhausted_retries_are_wrapped(self):
        session = make_session(http_error(429), http_error(429), http_error(429))

        with pytest.raises(ProviderError):
            make_provider(session).fetch_costs(SUMMARY_PARAMS)

        assert session.get.call_count == 3

    @pytest.mark.parametrize('exc,kind', [
        (http_error(429), ErrorKind.THROTTLED),
        (http_error(503), ErrorKind.UNAVAILABLE),
        (requests.ConnectionError('Connection reset by peer'), ErrorKind.NETWORK_UNREACHABLE),
        (http_error(404), ErrorKind.OTHER),
    ])
    def test_classification(self, exc, kind):
        assert classify_datadog_error(exc) == kind


class TestValidateCredentials:
    """Tests for validate_credentials."""

    def test_valid(self):
        session = make_session({'usage': []})
        assert make_provider(session).validate_credentials() is True

    @pytest.mark.parametrize('status', [401, 403])
    def test_rejected(self, status):
        session = make_session(http_error(status))
        assert make_provider(session).validate_credentials() is False

    def test_probe_is_not_retried(self):
        session = make_session(http_error(503))

        with pytest.raises(requests.HTTPError):
            make_provider(session).validate_credentials()

        assert session.get.call_count == 1
