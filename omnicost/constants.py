"""
Constants for omnicost providers and formatters.

This module defines all magic strings and numbers used across the codebase
to prevent typos, ensure consistency, and make maintenance easier.
"""

# =============================================================================
# Retry Configuration
# =============================================================================

MAX_RETRIES = 3
RETRY_DELAY_SECONDS = 1.0  # Multiplied by the attempt number (linear back-off)

# =============================================================================
# Cloud Providers
# =============================================================================

PROVIDER_AWS = "aws"
PROVIDER_AZURE = "azure"
PROVIDER_GCP = "gcp"
PROVIDER_DATADOG = "datadog"

PROVIDER_NAMES = {
    PROVIDER_AWS: "AWS Cost Explorer",
    PROVIDER_AZURE: "Azure Cost Management",
    PROVIDER_GCP: "GCP BigQuery Billing Export",
    PROVIDER_DATADOG: "Datadog Usage",
}

# =============================================================================
# Record Defaults
# =============================================================================

DEFAULT_CURRENCY = "USD"
SERVICE_TOTAL = "Total"
SERVICE_UNKNOWN = "Unknown"
DATE_FORMAT = "%Y-%m-%d"

# =============================================================================
# Group-by Dimensions
# =============================================================================

GROUP_BY_SERVICE = "SERVICE"
GROUP_BY_TAG = "TAG"
GROUP_BY_REGION = "REGION"
GROUP_BY_ACCOUNT = "ACCOUNT"
GROUP_BY_RESOURCE_GROUP = "RESOURCE_GROUP"

# GCP-only dimensions, reachable through FetchParams but not the CLI
GROUP_BY_PROJECT = "PROJECT"
GROUP_BY_SKU = "SKU"

VALID_GROUP_BY_DIMENSIONS = (
    GROUP_BY_SERVICE,
    GROUP_BY_TAG,
    GROUP_BY_REGION,
    GROUP_BY_ACCOUNT,
    GROUP_BY_RESOURCE_GROUP,
)

# =============================================================================
# Output Formats
# =============================================================================

FORMAT_TSV = "tsv"
FORMAT_CSV = "csv"
FORMAT_MARKDOWN = "markdown"

VALID_FORMATS = (FORMAT_TSV, FORMAT_CSV, FORMAT_MARKDOWN)
DEFAULT_FORMAT = FORMAT_TSV

OUTPUT_COLUMNS = ("Date", "Service", "Amount", "Currency", "Region")

# =============================================================================
# AWS Cost Explorer
# =============================================================================

AWS_DEFAULT_REGION = "us-east-1"  # Cost Explorer is served from us-east-1
AWS_COST_METRIC = "UnblendedCost"
AWS_GRANULARITY = "DAILY"

AWS_GROUP_BY_KEYS = {
    GROUP_BY_SERVICE: "SERVICE",
    GROUP_BY_ACCOUNT: "LINKED_ACCOUNT",
    GROUP_BY_REGION: "REGION",
    GROUP_BY_TAG: "TAG",
}

# =============================================================================
# Azure Cost Management
# =============================================================================

AZURE_QUERY_TYPE = "Usage"
AZURE_TIMEFRAME = "Custom"
AZURE_GRANULARITY = "Daily"

AZURE_GROUP_BY_DIMENSIONS = {
    GROUP_BY_SERVICE: "ServiceName",
    GROUP_BY_REGION: "ResourceLocation",
    GROUP_BY_RESOURCE_GROUP: "ResourceGroupName",
    GROUP_BY_TAG: "Tags",
}

# =============================================================================
# GCP BigQuery Billing Export
# =============================================================================

GCP_BILLING_TABLE_PATTERN = "gcp_billing_export_v1_*"

GCP_GROUP_BY_COLUMNS = {
    GROUP_BY_SERVICE: "service.description",
    GROUP_BY_PROJECT: "project.id",
    GROUP_BY_REGION: "location.location",
    GROUP_BY_SKU: "sku.description",
}

# =============================================================================
# Datadog Usage Metering
# =============================================================================

DATADOG_DEFAULT_SITE = "datadoghq.com"
DATADOG_USAGE_SUMMARY_PATH = "/api/v1/usage/summary"
DATADOG_MONTHLY_ATTRIBUTION_PATH = "/api/v1/usage/monthly-attribution"
DATADOG_HTTP_TIMEOUT_SECONDS = 60
DATADOG_ATTRIBUTION_SERVICE = "Datadog Usage"

# Usage summary fields and the label each one is reported under.
# Values are raw usage counts, not monetary amounts.
DATADOG_USAGE_FIELDS = (
    ("apm_host_top99p", "APM Hosts"),
    ("ingested_events_bytes_sum", "APM Traces"),
    ("indexed_events_count_sum", "Logs"),
    ("infra_host_top99p", "Infrastructure Hosts"),
    ("synthetics_check_calls_count_sum", "Synthetics"),
    ("rum_total_session_count_sum", "RUM Sessions"),
)

# =============================================================================
# Credential Environment Variables
# =============================================================================

AZURE_TENANT_ID_ENV = "AZURE_TENANT_ID"
AZURE_CLIENT_ID_ENV = "AZURE_CLIENT_ID"
AZURE_CLIENT_SECRET_ENV = "AZURE_CLIENT_SECRET"

DATADOG_API_KEY_ENVS = ("DD_API_KEY", "DATADOG_API_KEY")
DATADOG_APP_KEY_ENVS = ("DD_APP_KEY", "DATADOG_APP_KEY")
DATADOG_SITE_ENV = "DD_SITE"
