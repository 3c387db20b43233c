"""Configuration management with AWS SSM Parameter Store support."""
import json
import os
from typing import Optional

import boto3
from botocore.exceptions import ClientError
from pydantic import ValidationError

from .logger import setup_logger
from .models import ReaperConfig

logger = setup_logger(__name__)


class ConfigurationError(Exception):
    """Exception raised for configuration errors."""
    pass


def load_config_from_ssm(parameter_name: str, region: Optional[str] = None) -> ReaperConfig:
    """Load configuration from AWS SSM Parameter Store.

    Args:
        parameter_name: Name of the SSM parameter
        region: AWS region (defaults to AWS_REGION env var or us-east-1)

    Returns:
        Parsed ReaperConfig

    Raises:
        ConfigurationError: If parameter cannot be loaded or parsed
    """
    region = region or os.environ.get("AWS_REGION", "us-east-1")

    try:
        ssm = boto3.client("ssm", region_name=region)
        logger.info("Loading configuration from SSM", extra={"parameter": parameter_name})

        response = ssm.get_parameter(Name=parameter_name, WithDecryption=True)
        config_json = response["Parameter"]["Value"]
    except ClientError as e:
        error_code = e.response.get("Error", {}).get("Code", "Unknown")
        if error_code == "ParameterNotFound":
            raise ConfigurationError(f"SSM parameter not found: {parameter_name}") from e
        raise ConfigurationError(f"Failed to load SSM parameter: {e}") from e

    logger.info("Successfully loaded configuration from SSM")
    return parse_config(config_json)


def parse_config(config_json: str) -> ReaperConfig:
    """Parse JSON configuration string into ReaperConfig.

    Filter function names are checked against the filter registry here, so
    a typo fails the load instead of silently never matching.

    Raises:
        ConfigurationError: If JSON is invalid or doesn't match schema
    """
    try:
        config_dict = json.loads(config_json)
    except json.JSONDecodeError as e:
        raise ConfigurationError(f"Invalid JSON configuration: {e}") from e

    if not isinstance(config_dict, dict):
        raise ConfigurationError("Configuration must be a JSON object")

    try:
        return ReaperConfig(**config_dict)
    except ValidationError as e:
        raise ConfigurationError(f"Configuration validation failed: {e}") from e


def get_config(ssm_parameter: Optional[str] = None) -> ReaperConfig:
    """Get configuration from SSM or environment variables.

    Attempts to load from SSM if parameter name is provided via argument
    or REAPER_CONFIG_PARAM env var. Falls back to default config, which
    runs in dry-run mode with every resource kind disabled.

    Also respects DRY_RUN environment variable override.
    """
    param_name = ssm_parameter or os.environ.get("REAPER_CONFIG_PARAM")

    if param_name:
        try:
            config = load_config_from_ssm(param_name)
        except ConfigurationError as e:
            logger.warning(f"Failed to load config from SSM: {e}. Using defaults.")
            config = ReaperConfig()
    else:
        logger.info("No SSM parameter specified, using default configuration")
        config = ReaperConfig()

    dry_run_env = os.environ.get("DRY_RUN", "").lower()
    if dry_run_env in ("true", "1", "yes"):
        logger.info("DRY_RUN environment variable set to true")
        config.dry_run = True
    elif dry_run_env in ("false", "0", "no"):
        config.dry_run = False

    logger.info(
        "Configuration loaded",
        extra={
            "dry_run": config.dry_run,
            "regions": config.regions,
            "enabled_kinds": [kind.value for kind in config.enabled_kinds()],
        },
    )
    return config
