"""
Utility functions for rate limiting, retry logic, and logging
"""
import sys
import os
import logging
import time
from dataclasses import dataclass
from datetime import datetime
from typing import Any, Callable, Optional, TypeVar
from functools import wraps

from errors import is_retryable
from config import (
    RATE_LIMIT_DELAY, MAX_RETRIES, RETRY_DELAY, RETRY_MAX_DELAY, RETRY_BACKOFF,
    CONSOLE_LOG_LEVEL, LOGS_DIR
)

logger = logging.getLogger(__name__)

T = TypeVar('T')


def setup_logging(console_level: int = CONSOLE_LOG_LEVEL, logs_dir: str = LOGS_DIR) -> str:
    """
    Configure file and console logging for a migration run

    Args:
        console_level: Log level for console output
        logs_dir: Directory for log files (created if missing)

    Returns:
        Path of the log file
    """
    # Configure Windows console for UTF-8 encoding to handle special characters
    if sys.platform == 'win32':
        if hasattr(sys.stdout, 'reconfigure'):
            sys.stdout.reconfigure(encoding='utf-8')
        if hasattr(sys.stderr, 'reconfigure'):
            sys.stderr.reconfigure(encoding='utf-8')

    if not os.path.exists(logs_dir):
        os.makedirs(logs_dir)

    log_filename = os.path.join(logs_dir, f'migration_{datetime.now().strftime("%Y%m%d_%H%M%S")}.log')

    # File handler captures everything, console only what was asked for
    file_handler = logging.FileHandler(log_filename, encoding='utf-8')
    file_handler.setLevel(logging.DEBUG)

    console_handler = logging.StreamHandler()
    console_handler.setLevel(console_level)

    formatter = logging.Formatter('%(asctime)s - %(levelname)s - %(message)s')
    file_handler.setFormatter(formatter)
    console_handler.setFormatter(formatter)

    logging.basicConfig(
        level=logging.DEBUG,
        handlers=[file_handler, console_handler],
        force=True
    )
    # urllib3 debug output drowns the migration log
    logging.getLogger('urllib3').setLevel(logging.WARNING)
    return log_filename


def rate_limit(func: Callable) -> Callable:
    """Decorator to add rate limiting to API client methods"""
    @wraps(func)
    def wrapper(self, *args, **kwargs):
        delay = getattr(self, 'rate_limit_delay', RATE_LIMIT_DELAY)
        if delay:
            time.sleep(delay)
        return func(self, *args, **kwargs)
    return wrapper


def execute_with_backoff(operation: Callable[[], T], max_attempts: int = MAX_RETRIES,
                         initial_delay: float = RETRY_DELAY, max_delay: float = RETRY_MAX_DELAY,
                         should_retry: Optional[Callable[[Exception], bool]] = None,
                         description: Optional[str] = None,
                         sleep: Callable[[float], Any] = time.sleep) -> T:
    """
    Run an operation, retrying failures with exponential backoff

    The delay doubles after each failed attempt and never exceeds max_delay.
    After the last attempt the operation's own exception is re-raised.

    Args:
        operation: Zero-argument callable to run
        max_attempts: Total number of attempts (including the first)
        initial_delay: Delay before the second attempt in seconds
        max_delay: Upper bound for any single delay in seconds
        should_retry: Optional predicate; returning False re-raises immediately
        description: Label used in log messages
        sleep: Sleep function (replaceable in tests)

    Returns:
        Whatever the operation returns
    """
    label = description or getattr(operation, '__name__', 'operation')
    delay = initial_delay
    attempt = 0

    while True:
        attempt += 1
        try:
            return operation()
        except Exception as e:
            if should_retry is not None and not should_retry(e):
                raise
            if attempt >= max_attempts:
                logger.error(f"Max attempts ({max_attempts}) exceeded for {label}: {e}")
                raise
            wait = min(delay, max_delay)
            logger.warning(f"Error in {label} ({type(e).__name__}: {e}), retrying in {wait}s "
                           f"(attempt {attempt}/{max_attempts})...")
            sleep(wait)
            delay = min(delay * RETRY_BACKOFF, max_delay)


@dataclass(frozen=True)
class BackoffPolicy:
    """Retry parameters shared by every external call of one run"""
    max_attempts: int = MAX_RETRIES
    initial_delay: float = RETRY_DELAY
    max_delay: float = RETRY_MAX_DELAY
    should_retry: Optional[Callable[[Exception], bool]] = None

    @classmethod
    def from_config(cls, config) -> 'BackoffPolicy':
        return cls(
            max_attempts=config.max_attempts,
            initial_delay=config.initial_delay,
            max_delay=config.max_delay,
            should_retry=is_retryable,
        )

    def execute(self, operation: Callable[[], T], description: Optional[str] = None,
                should_retry: Optional[Callable[[Exception], bool]] = None) -> T:
        return execute_with_backoff(
            operation,
            max_attempts=self.max_attempts,
            initial_delay=self.initial_delay,
            max_delay=self.max_delay,
            should_retry=should_retry or self.should_retry,
            description=description,
        )


def retry_with_backoff(max_retries: int = MAX_RETRIES, delay: float = RETRY_DELAY,
                       max_delay: float = RETRY_MAX_DELAY,
                       should_retry: Optional[Callable[[Exception], bool]] = None):
    """
    Decorator for retrying function calls with exponential backoff

    Args:
        max_retries: Maximum number of attempts
        delay: Initial delay between retries in seconds
        max_delay: Upper bound for a single delay in seconds
        should_retry: Optional predicate deciding whether an error is retryable
    """
    def decorator(func: Callable) -> Callable:
        @wraps(func)
        def wrapper(*args, **kwargs):
            return execute_with_backoff(
                lambda: func(*args, **kwargs),
                max_attempts=max_retries,
                initial_delay=delay,
                max_delay=max_delay,
                should_retry=should_retry,
                description=func.__name__,
            )
        return wrapper
    return decorator


def process_batch(items: list, batch_size: int = 50) -> list:
    """
    Split items into batches for processing

    Args:
        items: List of items to batch
        batch_size: Size of each batch

    Returns:
        List of batches
    """
    return [items[i:i + batch_size] for i in range(0, len(items), batch_size)]


def normalize_title(title: Optional[str]) -> str:
    """Column title key: case-insensitive, whitespace-insensitive"""
    if not title:
        return ''
    return ''.join(str(title).split()).lower()
