"""
Utility functions for the FaceGate engine.

This module provides the timing decorator, identifier generation and hashing
helpers shared by the matching, audit and orchestration modules.
"""

import functools
import hashlib
import json
import time
import uuid
from pathlib import Path
from typing import Any, Callable, Dict, TypeVar, Union
import structlog

# Initialize structured logger
logger = structlog.get_logger(__name__)

# Type variable for generic decorators
F = TypeVar("F", bound=Callable[..., Any])


def timer(func: F) -> F:
    """
    Decorator to measure and log function execution time.

    Parameters
    ----------
    func : Callable
        Function to be timed.

    Returns
    -------
    Callable
        Wrapped function with timing capability.

    Examples
    --------
    >>> @timer
    ... def rebuild():
    ...     return store.load_all()
    >>> pairs = rebuild()  # Logs execution time
    """

    @functools.wraps(func)
    def wrapper(*args, **kwargs):
        start_time = time.perf_counter()

        try:
            result = func(*args, **kwargs)
        except Exception as e:
            logger.error(
                "Function execution failed",
                function_name=func.__name__,
                module=func.__module__,
                execution_time_ms=(time.perf_counter() - start_time) * 1000,
                error=str(e),
                error_type=type(e).__name__,
                success=False,
            )
            raise

        logger.debug(
            "Function execution completed",
            function_name=func.__name__,
            module=func.__module__,
            execution_time_ms=(time.perf_counter() - start_time) * 1000,
            success=True,
        )
        return result

    return wrapper


def generate_record_id(prefix: str = "audit") -> str:
    """
    Generate a unique, time-ordered record identifier.

    Examples
    --------
    >>> generate_record_id()  # e.g., "audit_20240101_123456_abc123de"
    """
    timestamp = time.strftime("%Y%m%d_%H%M%S")
    unique_suffix = str(uuid.uuid4())[:8]
    return f"{prefix}_{timestamp}_{unique_suffix}"


def generate_session_id() -> str:
    """Generate a unique 32-character session identifier."""
    return str(uuid.uuid4()).replace("-", "")


def hash_data(data: Union[str, bytes], algorithm: str = "sha256") -> str:
    """
    Generate hash of data for integrity verification.

    Parameters
    ----------
    data : Union[str, bytes]
        Data to hash.
    algorithm : str, default="sha256"
        Hashing algorithm to use.

    Returns
    -------
    str
        Hexadecimal hash string.

    Raises
    ------
    ValueError
        If algorithm is not supported.
    """
    if algorithm not in hashlib.algorithms_available:
        raise ValueError(f"Unsupported hash algorithm: {algorithm}")

    if isinstance(data, str):
        data = data.encode("utf-8")

    hasher = hashlib.new(algorithm)
    hasher.update(data)
    return hasher.hexdigest()


def canonical_json(data: Dict[str, Any]) -> str:
    """Serialise a dictionary deterministically (sorted keys, no whitespace)."""
    return json.dumps(data, sort_keys=True, separators=(",", ":"), default=str)


def ensure_directory(path: Union[str, Path]) -> Path:
    """Ensure directory exists, creating it if necessary."""
    path_obj = Path(path)
    path_obj.mkdir(parents=True, exist_ok=True)
    return path_obj
