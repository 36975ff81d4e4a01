#!/usr/bin/env python3
"""
omnicost - Multi-Cloud Cost Report

Fetches daily cost (or usage) data from one provider per run and prints it
as TSV, CSV or a Markdown table on stdout. Logs and progress go to stderr.

Usage:
    omnicost aws -s 2025-01-01 -e 2025-01-31
    omnicost aws --account-id 123456789012 -s 2025-01-01 -e 2025-01-31 -g REGION -f markdown
    omnicost gcp --project my-project --dataset billing_export -s 2025-01-01 -e 2025-01-31
    omnicost azure -s <subscription-id> --start 2025-01-01 --end 2025-01-31 -f csv
    omnicost datadog -s 2025-01-01 -e 2025-03-31
"""
import argparse
import logging
import os
import sys
from typing import Dict, List, Mapping, Optional

from aws_cost import AWSCostProvider
from azure_cost import AzureCostProvider
from datadog_cost import DatadogCostProvider
from gcp_cost import GCPCostProvider
from omnicost import __version__
from omnicost.config import (
    azure_credentials_from_env,
    datadog_credentials_from_env,
    get_nested,
    load_config,
)
from omnicost.constants import (
    AWS_DEFAULT_REGION,
    DEFAULT_FORMAT,
    GROUP_BY_SERVICE,
    PROVIDER_AWS,
    PROVIDER_AZURE,
    PROVIDER_DATADOG,
    PROVIDER_GCP,
    VALID_FORMATS,
    VALID_GROUP_BY_DIMENSIONS,
)
from omnicost.errors import CredentialsError, ValidationError
from omnicost.formatters import format_cost_data
from omnicost.models import CostRecord, FetchParams
from omnicost.provider import CostProvider
from omnicost.utils import fetch_status, parse_date, setup_logging

logger = logging.getLogger(__name__)


# =============================================================================
# Input Validation
# =============================================================================

def validate_dates(start: str, end: str) -> None:
    """Both dates must be YYYY-MM-DD and start must not be after end."""
    start_date = parse_date(start)
    if start_date is None:
        raise ValidationError(f"Invalid start date: {start}")

    end_date = parse_date(end)
    if end_date is None:
        raise ValidationError(f"Invalid end date: {end}")

    if start_date > end_date:
        raise ValidationError("Start date must be before end date")


def validate_group_by(group_by: Optional[str]) -> Optional[str]:
    """Upper-case and check a group-by dimension. None passes through."""
    if not group_by:
        return None
    dimension = group_by.upper()
    if dimension not in VALID_GROUP_BY_DIMENSIONS:
        raise ValidationError(
            f"Invalid group-by dimension: {group_by}. "
            f"Valid options: {', '.join(VALID_GROUP_BY_DIMENSIONS)}"
        )
    return dimension


def validate_format(output_format: str) -> str:
    """Lower-case and check an output format name."""
    fmt = output_format.lower()
    if fmt not in VALID_FORMATS:
        raise ValidationError(
            f"Invalid format: {output_format}. Valid options: {', '.join(VALID_FORMATS)}"
        )
    return fmt


# =============================================================================
# Argument Parsing
# =============================================================================

class ReportArgumentParser(argparse.ArgumentParser):
    """ArgumentParser whose usage errors exit with 1 like every other fatal error."""

    def error(self, message):
        self.print_usage(sys.stderr)
        self.exit(1, f"Error: {message}\n")


def _add_common_options(parser: argparse.ArgumentParser, default_group_by: Optional[str]) -> None:
    group_help = f"Group by: {', '.join(VALID_GROUP_BY_DIMENSIONS)}"
    if default_group_by:
        group_help += f" (default: {default_group_by})"
    parser.add_argument('-g', '--group-by', default=default_group_by, help=group_help)
    parser.add_argument('-f', '--format',
                        help=f"Output format: {', '.join(VALID_FORMATS)} (default: {DEFAULT_FORMAT})")
    parser.add_argument('--sheet', metavar='URL', help='Export to Google Sheets (not yet implemented)')
    parser.add_argument('-q', '--quiet', action='store_true', help='Only log warnings and errors')


def _add_date_options(parser: argparse.ArgumentParser) -> None:
    parser.add_argument('-s', '--start', required=True, help='Start date YYYY-MM-DD (inclusive)')
    parser.add_argument('-e', '--end', required=True, help='End date YYYY-MM-DD (inclusive)')


def build_parser() -> argparse.ArgumentParser:
    parser = ReportArgumentParser(
        prog='omnicost',
        description='Fetch and normalize cloud cost data from AWS, Azure, GCP and Datadog',
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Examples:
  # AWS costs by service for January
  omnicost aws -s 2025-01-01 -e 2025-01-31

  # One linked account, by region, as Markdown
  omnicost aws --account-id 123456789012 -s 2025-01-01 -e 2025-01-31 -g REGION -f markdown

  # GCP costs from the BigQuery billing export
  omnicost gcp --project my-project --dataset billing_export -s 2025-01-01 -e 2025-01-31

  # Azure subscription totals (service principal credentials from the environment)
  omnicost azure -s xxxxxxxx-xxxx-xxxx-xxxx-xxxxxxxxxxxx --start 2025-01-01 --end 2025-01-31

  # Datadog usage by product
  omnicost datadog -s 2025-01-01 -e 2025-03-31
"""
    )
    parser.add_argument('--version', action='version', version=f'%(prog)s {__version__}')
    parser.add_argument('--config', help='Path to YAML config file')
    parser.add_argument('--log-level', help='Logging level (DEBUG, INFO, WARNING, ERROR)')

    subparsers = parser.add_subparsers(dest='provider', metavar='<provider>')
    subparsers.required = True

    # AWS
    aws = subparsers.add_parser(PROVIDER_AWS, help='AWS Cost Explorer')
    aws.add_argument('--account-id', help='Linked account ID to restrict costs to')
    aws.add_argument('--region', help=f'Cost Explorer region (default: {AWS_DEFAULT_REGION})')
    aws.add_argument('--profile', help='AWS profile name')
    aws.add_argument('--tag-key', help='Cost allocation tag key for -g TAG')
    _add_date_options(aws)
    _add_common_options(aws, GROUP_BY_SERVICE)

    # GCP
    gcp = subparsers.add_parser(PROVIDER_GCP, help='GCP BigQuery billing export')
    gcp.add_argument('--project', required=True, help='GCP project ID holding the billing export')
    gcp.add_argument('--dataset', required=True, help='BigQuery dataset of the billing export')
    _add_date_options(gcp)
    _add_common_options(gcp, GROUP_BY_SERVICE)

    # Azure
    azure = subparsers.add_parser(PROVIDER_AZURE, help='Azure Cost Management')
    azure.add_argument('-s', '--subscription', required=True, help='Azure subscription ID')
    azure.add_argument('--start', required=True, help='Start date YYYY-MM-DD (inclusive)')
    azure.add_argument('--end', required=True, help='End date YYYY-MM-DD (inclusive)')
    _add_common_options(azure, None)

    # Datadog
    datadog = subparsers.add_parser(PROVIDER_DATADOG, help='Datadog usage metering')
    _add_date_options(datadog)
    _add_common_options(datadog, None)

    return parser


# =============================================================================
# Provider Factory
# =============================================================================

def create_provider(args, config: Dict, environ: Optional[Mapping[str, str]] = None) -> CostProvider:
    """
    Build the adapter for `args.provider`.

    Azure and Datadog credentials are read from the environment here, once,
    and handed to the adapter.
    """
    environ = os.environ if environ is None else environ

    if args.provider == PROVIDER_AWS:
        return AWSCostProvider(
            account_id=args.account_id,
            region=get_nested(config, 'aws.region') or AWS_DEFAULT_REGION,
            profile=get_nested(config, 'aws.profile'),
        )
    if args.provider == PROVIDER_GCP:
        return GCPCostProvider(project_id=args.project, dataset=args.dataset)
    if args.provider == PROVIDER_AZURE:
        return AzureCostProvider(
            subscription_id=args.subscription,
            credentials=azure_credentials_from_env(environ),
        )
    if args.provider == PROVIDER_DATADOG:
        return DatadogCostProvider(
            credentials=datadog_credentials_from_env(environ, site=get_nested(config, 'datadog.site')),
        )
    raise ValidationError(f"Unknown provider: {args.provider}")


def run_report(provider: CostProvider, params: FetchParams, quiet: bool = False) -> List[CostRecord]:
    """Validate credentials, then fetch. Raises CredentialsError when rejected."""
    with fetch_status(f"Validating {provider.name} credentials...", quiet):
        valid = provider.validate_credentials()
    if not valid:
        raise CredentialsError(f"Invalid or missing {provider.name} credentials")

    with fetch_status(f"Fetching cost data from {provider.name}...", quiet):
        return provider.fetch_costs(params)


def main(argv: Optional[List[str]] = None, environ: Optional[Mapping[str, str]] = None) -> int:
    parser = build_parser()
    args = parser.parse_args(argv)

    try:
        config = load_config(args, environ)

        if args.log_level:
            log_level = args.log_level
        elif args.quiet:
            log_level = 'WARNING'
        else:
            log_level = config.get('log_level') or 'INFO'
        setup_logging(log_level)

        validate_dates(args.start, args.end)
        group_by = validate_group_by(args.group_by)
        output_format = validate_format(config.get('format') or DEFAULT_FORMAT)

        filters = {}
        if getattr(args, 'tag_key', None):
            filters['tag_key'] = args.tag_key

        params = FetchParams(
            start_date=args.start,
            end_date=args.end,
            group_by=group_by,
            filters=filters,
        )

        provider = create_provider(args, config, environ)
        logger.info(f"Fetching {provider.name} costs from {args.start} to {args.end}")
        records = run_report(provider, params, quiet=args.quiet)

        if not records:
            logger.warning("No cost data found for the specified period.")
            return 0

        if args.sheet:
            print("Google Sheets integration not yet implemented")
            print(f"Sheet URL: {args.sheet}")
            return 0

        print(format_cost_data(records, output_format))
        return 0

    except Exception as e:
        logger.debug("Report failed", exc_info=True)
        print(f"Error: {e}", file=sys.stderr)
        return 1


if __name__ == '__main__':
    sys.exit(main())
