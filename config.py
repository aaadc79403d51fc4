"""
Application configuration and logging setup.

Settings come from the environment so the same build runs locally on SQLite
and in production against PostgreSQL.
"""

import logging
import os
import sys
from pathlib import Path

DEFAULT_SECRET_KEY = 'dev-secret-key-change-me'
DEFAULT_LOG_FORMAT = '%(asctime)s - %(name)s - %(levelname)s - %(message)s'


class Config:
    SQLALCHEMY_DATABASE_URI = os.environ.get('DATABASE_URL', 'sqlite:///budget.db')
    SQLALCHEMY_TRACK_MODIFICATIONS = False
    SQLALCHEMY_ENGINE_OPTIONS = {'pool_pre_ping': True}
    SECRET_KEY = os.environ.get('SECRET_KEY', DEFAULT_SECRET_KEY)
    API_PREFIX = os.environ.get('API_PREFIX', '/api')
    LOG_LEVEL = os.environ.get('LOG_LEVEL', 'INFO')
    LOG_FILE = os.environ.get('LOG_FILE')
    LOG_FORMAT = os.environ.get('LOG_FORMAT', DEFAULT_LOG_FORMAT)
    TESTING = False


def setup_logging(config) -> None:
    """
    Configure the root logger from application settings.

    Args:
        config: Mapping with LOG_LEVEL, LOG_FORMAT and optional LOG_FILE keys
    """
    level_name = str(config.get('LOG_LEVEL') or 'INFO').upper()
    log_level = getattr(logging, level_name, None)
    if not isinstance(log_level, int):
        raise ValueError(f"Unknown log level: {level_name}")
    log_format = config.get('LOG_FORMAT') or DEFAULT_LOG_FORMAT
    log_file = config.get('LOG_FILE')

    handlers = [logging.StreamHandler(sys.stdout)]
    if log_file:
        log_path = Path(log_file)
        try:
            log_path.parent.mkdir(parents=True, exist_ok=True)
        except OSError as exc:
            raise RuntimeError(f"Unable to prepare log file path '{log_file}': {exc}") from exc
        handlers.append(logging.FileHandler(log_path))

    logging.basicConfig(
        level=log_level,
        format=log_format,
        handlers=handlers
    )
