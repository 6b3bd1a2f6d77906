"""
Entry point wiring for the chunk egress service.

This module is what a host process (a buffering daemon, a Lambda function or
the bundled CLI) calls to obtain a ready-to-use ``ChunkOutput``. It is
responsible for:
1.  Loading and validating configuration from the environment.
2.  Initializing the AWS Lambda Powertools Logger and sharing its JSON
    formatting with the package loggers.
3.  Building the boto3-backed storage client.
4.  Constructing the output (which validates the key format and compression
    mode) and ensuring the target container exists.
"""

from typing import Optional

from aws_lambda_powertools import Logger
from aws_lambda_powertools.logging.utils import copy_config_to_registered_loggers

from .clients import StorageClient, build_s3_client
from .config import EgressConfig, get_config
from .exceptions import ChunkEgressError, get_error_context
from .output import ChunkOutput

PACKAGE_LOGGER_PREFIX = "chunk_egress"


def configure_logging(config: EgressConfig) -> Logger:
    """Creates the service logger and applies its formatting to package loggers."""
    logger = Logger(service=config.service_name, level=config.log_level)
    copy_config_to_registered_loggers(
        source_logger=logger,
        log_level=config.log_level,
        include={PACKAGE_LOGGER_PREFIX},
    )
    return logger


def create_output(
    config: Optional[EgressConfig] = None,
    storage: Optional[StorageClient] = None,
    start: bool = True,
) -> ChunkOutput:
    """
    Builds a configured ``ChunkOutput``.

    Configuration problems raise ConfigurationError before any remote call is
    made. With ``start`` set, the target container is checked (and created if
    allowed) before returning.
    """
    config = config or get_config()
    logger = configure_logging(config)

    try:
        output = ChunkOutput(config, storage or build_s3_client(config))
        if start:
            output.start()
    except ChunkEgressError as e:
        logger.error(
            f"Chunk egress setup failed: {e}",
            extra={"setup_error": get_error_context(e)},
        )
        raise

    logger.info(
        "Chunk egress ready",
        extra={
            "container": config.container,
            "store_as": output.mode.name,
            "overwrite": config.overwrite,
        },
    )
    return output
