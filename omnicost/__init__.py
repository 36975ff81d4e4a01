"""
omnicost shared library.
"""
# Import constants module for easy access
from . import constants
from .config import (
    AzureCredentials,
    DatadogCredentials,
    azure_credentials_from_env,
    datadog_credentials_from_env,
    load_config,
)
from .constants import (
    # Providers
    PROVIDER_AWS,
    PROVIDER_AZURE,
    PROVIDER_DATADOG,
    PROVIDER_GCP,
    # Validation
    VALID_FORMATS,
    VALID_GROUP_BY_DIMENSIONS,
)
from .errors import (
    ConfigurationError,
    CredentialsError,
    ErrorClassifier,
    ErrorKind,
    ErrorRule,
    OmnicostError,
    ProviderError,
    ValidationError,
)
from .formatters import format_cost_data, get_formatter
from .models import CostRecord, FetchParams
from .provider import CostProvider
from .retry import RetryExecutor
from .utils import setup_logging, tags_to_dict

__version__ = '0.1.0'

__all__ = [
    '__version__',
    # Constants
    'constants',
    'PROVIDER_AWS',
    'PROVIDER_AZURE',
    'PROVIDER_DATADOG',
    'PROVIDER_GCP',
    'VALID_FORMATS',
    'VALID_GROUP_BY_DIMENSIONS',
    # Models
    'CostRecord',
    'FetchParams',
    'CostProvider',
    # Errors
    'OmnicostError',
    'ValidationError',
    'ConfigurationError',
    'CredentialsError',
    'ProviderError',
    'ErrorKind',
    'ErrorRule',
    'ErrorClassifier',
    # Retry
    'RetryExecutor',
    # Config
    'AzureCredentials',
    'DatadogCredentials',
    'azure_credentials_from_env',
    'datadog_credentials_from_env',
    'load_config',
    # Output
    'format_cost_data',
    'get_formatter',
    # Utils
    'setup_logging',
    'tags_to_dict',
]
