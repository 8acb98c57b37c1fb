"""
Shared utilities: logging, exceptions, retry, validation and uploads.
"""
from utils.exceptions import *
from utils.logger import get_logger
from utils.retry import with_retry, retry_async, get_circuit_breaker

__all__ = [
    "get_logger",
    "with_retry",
    "retry_async",
    "get_circuit_breaker"
]
