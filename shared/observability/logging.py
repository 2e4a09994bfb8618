"""Logging setup for ddml applications and scripts."""

import logging
import sys

from shared.config import DDMLConfig, Environment, get_config

logger = logging.getLogger(__name__)


def setup_logging(config: DDMLConfig | None = None) -> None:
    """Set up logging configuration and report the active settings."""
    if config is None:
        config = get_config()

    # Explicit level wins, otherwise derive it from the environment
    if config.log_level is not None:
        log_level = getattr(logging, config.log_level)
    elif config.environment == Environment.DEVELOPMENT:
        log_level = logging.DEBUG
    else:
        log_level = logging.INFO

    log_format = "%(asctime)s - %(name)s - %(levelname)s - %(message)s"

    logging.basicConfig(
        level=log_level,
        format=log_format,
        handlers=[logging.StreamHandler(sys.stdout)],
        force=True,
    )

    # joblib workers are chatty at DEBUG
    logging.getLogger("joblib").setLevel(max(log_level, logging.INFO))

    logger.debug("DDML configuration: %s", config.to_dict())
    for issue in config.validate_configuration():
        logger.warning("Configuration: %s", issue)
