"""
Configuration and constants for Project Online to Smartsheet migration
"""
import os
import logging
from dataclasses import dataclass
from typing import Optional
from dotenv import load_dotenv

# Load environment variables
load_dotenv()

# Rate limiting configuration
# OPTIMIZATION: Smartsheet allows 300 requests per minute per token
# - 0.2s (200ms) = safe default, ~5 calls/second
# - 0.1s (100ms) = faster, use for single-project runs only
# - 0.5s (500ms) = slower, use if getting 429 errors with several workers
RATE_LIMIT_DELAY = 0.2  # Delay between API calls in seconds

# Retry configuration (exponential backoff)
MAX_RETRIES = 5  # Total attempts per call, including the first one
RETRY_DELAY = 1.0  # Initial delay between retries in seconds
RETRY_MAX_DELAY = 30.0  # Upper bound for a single backoff delay in seconds
RETRY_BACKOFF = 2  # Exponential backoff multiplier

# Batch processing configuration
# Smartsheet accepts up to 500 rows per addRows call, but large payloads
# are slower to retry.
# - 100 = balanced default
# - 250 = faster for large schedules
# - 50 = safer for slow networks
DEFAULT_BATCH_SIZE = 100

# Parallel processing configuration
# Each project runs on its own worker; rows within a project are always sequential.
# - 1 = one project at a time
# - 2-4 = several projects, watch for 429 errors
MAX_WORKERS = 1

# Projects to migrate when no ids are given on the command line
# PROJECT_IDS = [
#     "6b8f0b6e-3d4a-4f7e-9d0e-2f4c1a7b9e21",  # Example project
# ]
PROJECT_IDS = []

# Re-apply predecessor links that pointed at rows created later in the same run
RESOLVE_DEFERRED_PREDECESSORS = True

# Project Online durations are expressed against an 8 hour working day
HOURS_PER_DAY = 8

# Smartsheet name limits
MAX_WORKSPACE_NAME_LENGTH = 100
MAX_SHEET_NAME_LENGTH = 50

# Logging configuration
# Console log level: DEBUG, INFO, WARNING, ERROR, CRITICAL
CONSOLE_LOG_LEVEL = logging.INFO  # Log level for console output
LOGS_DIR = 'logs'

# Monitoring server (see monitoring/monitor.py)
DEFAULT_MONITOR_URL = "http://localhost:8002/api/status"

# Default API locations
DEFAULT_SMARTSHEET_BASE_URL = "https://api.smartsheet.com/2.0"
PROJECT_DATA_PATH = "/_api/ProjectData"

# Environment variable names
ENV_PROJECT_ONLINE_URL = 'PROJECT_ONLINE_URL'
ENV_PROJECT_ONLINE_ACCESS_TOKEN = 'PROJECT_ONLINE_ACCESS_TOKEN'
ENV_SMARTSHEET_API_TOKEN = 'SMARTSHEET_API_TOKEN'
ENV_SMARTSHEET_BASE_URL = 'SMARTSHEET_BASE_URL'
ENV_MONITOR_URL = 'MONITOR_URL'
ENV_BATCH_SIZE = 'MIGRATION_BATCH_SIZE'
ENV_MAX_WORKERS = 'MIGRATION_MAX_WORKERS'


def _env_int(name: str, default: int) -> int:
    value = os.getenv(name)
    if value is None or not value.strip():
        return default
    try:
        return int(value)
    except ValueError:
        raise ValueError(f"Environment variable {name} must be an integer, got {value!r}")


@dataclass
class MigrationConfig:
    """Settings for one migration run, passed explicitly to every component"""
    project_online_url: Optional[str] = None
    project_online_token: Optional[str] = None
    smartsheet_token: Optional[str] = None
    smartsheet_base_url: str = DEFAULT_SMARTSHEET_BASE_URL
    monitor_url: Optional[str] = None
    batch_size: int = DEFAULT_BATCH_SIZE
    max_workers: int = MAX_WORKERS
    max_attempts: int = MAX_RETRIES
    initial_delay: float = RETRY_DELAY
    max_delay: float = RETRY_MAX_DELAY
    rate_limit_delay: float = RATE_LIMIT_DELAY
    resolve_deferred_predecessors: bool = RESOLVE_DEFERRED_PREDECESSORS
    request_timeout: float = 60.0

    def __post_init__(self):
        if self.batch_size < 1:
            raise ValueError("batch_size must be at least 1")
        if self.max_attempts < 1:
            raise ValueError("max_attempts must be at least 1")

    @classmethod
    def from_env(cls, **overrides) -> 'MigrationConfig':
        """
        Build a configuration from environment variables (and .env)

        Args:
            **overrides: Values that take precedence over the environment

        Returns:
            MigrationConfig instance
        """
        values = {
            'project_online_url': os.getenv(ENV_PROJECT_ONLINE_URL),
            'project_online_token': os.getenv(ENV_PROJECT_ONLINE_ACCESS_TOKEN),
            'smartsheet_token': os.getenv(ENV_SMARTSHEET_API_TOKEN),
            'smartsheet_base_url': os.getenv(ENV_SMARTSHEET_BASE_URL) or DEFAULT_SMARTSHEET_BASE_URL,
            'monitor_url': os.getenv(ENV_MONITOR_URL),
            'batch_size': _env_int(ENV_BATCH_SIZE, DEFAULT_BATCH_SIZE),
            'max_workers': _env_int(ENV_MAX_WORKERS, MAX_WORKERS),
        }
        values.update({k: v for k, v in overrides.items() if v is not None})
        return cls(**values)
