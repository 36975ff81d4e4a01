"""
omnicost - Configuration Management

Supports loading configuration from:
1. Environment variables (OMNICOST_*)
2. YAML config file (--config, or a default location)
3. Command-line arguments (highest priority)

Provider credentials are never read from the config file or the command
line. They come from the process environment, read once at start-up.

Config file example:
```yaml
format: markdown
log_level: WARNING

aws:
  profile: billing
  region: us-east-1

datadog:
  site: datadoghq.eu
```
"""
import logging
import os
import re
import stat
from dataclasses import dataclass
from pathlib import Path
from typing import Any, Dict, Mapping, Optional

import yaml

from .constants import (
    AZURE_CLIENT_ID_ENV,
    AZURE_CLIENT_SECRET_ENV,
    AZURE_TENANT_ID_ENV,
    DATADOG_API_KEY_ENVS,
    DATADOG_APP_KEY_ENVS,
    DATADOG_DEFAULT_SITE,
    DATADOG_SITE_ENV,
)
from .errors import ConfigurationError

logger = logging.getLogger(__name__)


# Default config file locations (checked in order)
DEFAULT_CONFIG_PATHS = [
    './omnicost.yaml',
    './omnicost.yml',
    '~/.omnicost/config.yaml',
    '~/.omnicost/config.yml',
]

# Mapping from config keys to env vars
ENV_VAR_MAPPING = {
    'format': 'OMNICOST_FORMAT',
    'log_level': 'OMNICOST_LOG_LEVEL',
    'aws.profile': 'OMNICOST_AWS_PROFILE',
    'aws.region': 'OMNICOST_AWS_REGION',
    'datadog.site': 'OMNICOST_DATADOG_SITE',
}

# Mapping from argparse attributes to config keys
ARG_MAPPING = {
    'format': 'format',
    'log_level': 'log_level',
    'profile': 'aws.profile',
    'region': 'aws.region',
}


# =============================================================================
# Credentials
# =============================================================================

@dataclass(frozen=True)
class AzureCredentials:
    """Service principal credentials for Azure Cost Management."""
    tenant_id: Optional[str] = None
    client_id: Optional[str] = None
    client_secret: Optional[str] = None

    @property
    def missing(self) -> list:
        """Names of the environment variables that were not set."""
        return [
            env for env, value in (
                (AZURE_TENANT_ID_ENV, self.tenant_id),
                (AZURE_CLIENT_ID_ENV, self.client_id),
                (AZURE_CLIENT_SECRET_ENV, self.client_secret),
            )
            if not value
        ]


@dataclass(frozen=True)
class DatadogCredentials:
    """API and application keys for the Datadog Usage Metering API."""
    api_key: str = ''
    app_key: str = ''
    site: str = DATADOG_DEFAULT_SITE

    def __repr__(self) -> str:
        return f"DatadogCredentials(site={self.site!r})"


def _first_env(environ: Mapping[str, str], names) -> str:
    for name in names:
        value = environ.get(name)
        if value:
            return value
    return ''


def azure_credentials_from_env(environ: Optional[Mapping[str, str]] = None) -> AzureCredentials:
    """Read Azure service principal credentials from the environment."""
    environ = os.environ if environ is None else environ
    return AzureCredentials(
        tenant_id=environ.get(AZURE_TENANT_ID_ENV) or None,
        client_id=environ.get(AZURE_CLIENT_ID_ENV) or None,
        client_secret=environ.get(AZURE_CLIENT_SECRET_ENV) or None,
    )


def datadog_credentials_from_env(
    environ: Optional[Mapping[str, str]] = None,
    site: Optional[str] = None,
) -> DatadogCredentials:
    """
    Read Datadog keys from the environment.

    DD_* names take precedence over DATADOG_* names. The site comes from
    DD_SITE, then the `site` argument (config file), then datadoghq.com.
    """
    environ = os.environ if environ is None else environ
    return DatadogCredentials(
        api_key=_first_env(environ, DATADOG_API_KEY_ENVS),
        app_key=_first_env(environ, DATADOG_APP_KEY_ENVS),
        site=environ.get(DATADOG_SITE_ENV) or site or DATADOG_DEFAULT_SITE,
    )


# =============================================================================
# Layered Configuration
# =============================================================================

def _substitute_env_vars(value: Any) -> Any:
    """Substitute ${ENV_VAR} patterns in string values."""
    if isinstance(value, str):
        # Pattern: ${VAR_NAME} or ${VAR_NAME:-default}
        pattern = r'\$\{([^}:]+)(?::-([^}]*))?\}'

        def replace(match):
            var_name = match.group(1)
            default = match.group(2) or ''
            return os.environ.get(var_name, default)

        return re.sub(pattern, replace, value)
    elif isinstance(value, dict):
        return {k: _substitute_env_vars(v) for k, v in value.items()}
    elif isinstance(value, list):
        return [_substitute_env_vars(item) for item in value]
    return value


def get_nested(data: Dict, key_path: str, default: Any = None) -> Any:
    """Get a nested value from a dict using dot notation."""
    value = data
    for key in key_path.split('.'):
        if isinstance(value, dict) and key in value:
            value = value[key]
        else:
            return default
    return value


def _set_nested(data: Dict, key_path: str, value: Any) -> None:
    """Set a nested value in a dict using dot notation."""
    keys = key_path.split('.')
    for key in keys[:-1]:
        data = data.setdefault(key, {})
    data[keys[-1]] = value


def load_config_file(config_path: str) -> Dict[str, Any]:
    """Load configuration from a YAML file."""
    path = Path(config_path).expanduser()

    if not path.exists():
        raise ConfigurationError(f"Config file not found: {config_path}")

    # Config files may carry profile names; warn on loose permissions
    file_mode = path.stat().st_mode
    if file_mode & (stat.S_IRWXG | stat.S_IRWXO):
        logger.warning(f"Config file {config_path} has loose permissions. "
                       f"Consider: chmod 600 {config_path}")

    logger.debug(f"Loading config from {path}")

    try:
        with open(path) as f:
            config = yaml.safe_load(f) or {}
    except yaml.YAMLError as e:
        raise ConfigurationError(f"Invalid config file {config_path}: {e}") from e

    if not isinstance(config, dict):
        raise ConfigurationError(f"Invalid config file {config_path}: expected a mapping")

    return _substitute_env_vars(config)


def find_default_config() -> Optional[str]:
    """Find a config file in default locations."""
    for path in DEFAULT_CONFIG_PATHS:
        expanded = Path(path).expanduser()
        if expanded.exists():
            return str(expanded)
    return None


def load_env_config(environ: Optional[Mapping[str, str]] = None) -> Dict[str, Any]:
    """Load configuration from OMNICOST_* environment variables."""
    environ = os.environ if environ is None else environ
    config: Dict[str, Any] = {}

    for config_key, env_var in ENV_VAR_MAPPING.items():
        value = environ.get(env_var)
        if value:
            _set_nested(config, config_key, value)

    return config


def merge_configs(*configs: Dict[str, Any]) -> Dict[str, Any]:
    """Merge multiple config dicts. Later configs override earlier ones."""
    result: Dict[str, Any] = {}

    for config in configs:
        for key, value in config.items():
            if isinstance(value, dict) and isinstance(result.get(key), dict):
                result[key] = merge_configs(result[key], value)
            elif value is not None:
                result[key] = value

    return result


def args_to_config(args) -> Dict[str, Any]:
    """Convert argparse args to config dict format."""
    config: Dict[str, Any] = {}

    for arg_name, config_key in ARG_MAPPING.items():
        value = getattr(args, arg_name, None)
        if value is not None:
            _set_nested(config, config_key, value)

    return config


def load_config(args, environ: Optional[Mapping[str, str]] = None) -> Dict[str, Any]:
    """
    Load configuration from all sources and merge them.

    Priority (highest to lowest):
    1. CLI arguments
    2. Config file (--config or default location)
    3. Environment variables

    Returns merged config dict.
    """
    configs = []

    env_config = load_env_config(environ)
    if env_config:
        logger.debug("Loaded config from environment variables")
        configs.append(env_config)

    config_path = getattr(args, 'config', None) or find_default_config()
    if config_path:
        configs.append(load_config_file(config_path))

    configs.append(args_to_config(args))

    return merge_configs(*configs)
