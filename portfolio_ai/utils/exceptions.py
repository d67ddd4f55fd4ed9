"""
Exception taxonomy for the Portfolio AI engine.

Every engine error carries a stable `error_code` and an HTTP status used by
the exception middleware; partial index failures are reported as counts on
IndexResult and never raised.
"""
import asyncio
import functools
from random import uniform
from typing import Any, Dict, Optional

from fastapi import HTTPException


class PortfolioAIBaseException(Exception):
    """Root of the engine's exceptions"""

    error_code = "PORTFOLIO_AI_ERROR"
    http_status = 500

    def __init__(
        self,
        message: str,
        error_code: str = None,
        details: Dict[str, Any] = None,
        cause: Exception = None,
    ):
        self.message = message
        self.error_code = error_code or self.error_code
        self.details = details or {}
        self.cause = cause
        super().__init__(message)

    def to_dict(self) -> Dict[str, Any]:
        out = {
            "error_type": type(self).__name__,
            "error_code": self.error_code,
            "message": self.message,
            "details": self.details,
        }
        if self.cause:
            out["cause"] = str(self.cause)
        return out


def _with(details: Optional[Dict[str, Any]], **fields) -> Dict[str, Any]:
    """Merge the non-empty `fields` into `details`."""
    merged = dict(details or {})
    merged.update({k: v for k, v in fields.items() if v is not None and v != ""})
    return merged


class MalformedInputError(PortfolioAIBaseException):
    """Caller input that cannot enter the scoring or indexing pipeline (short JD, empty content, bad file)"""

    error_code = "MALFORMED_INPUT"
    http_status = 400

    def __init__(self, message: str, field: str = None, value: Any = None, **kwargs):
        invalid = str(value)[:200] if value is not None else None
        super().__init__(message, details=_with(kwargs.pop("details", None), field=field, invalid_value=invalid), **kwargs)


class NotFoundError(PortfolioAIBaseException):
    error_code = "NOT_FOUND"
    http_status = 404

    def __init__(self, message: str, source_type: str = None, source_id: str = None, **kwargs):
        details = _with(kwargs.pop("details", None), source_type=source_type, source_id=source_id)
        super().__init__(message, details=details, **kwargs)


class DatabaseError(PortfolioAIBaseException):
    """A chunk store or content collection operation failed"""

    error_code = "DATABASE_ERROR"

    def __init__(self, message: str, operation: str = None, collection: str = None, **kwargs):
        details = _with(kwargs.pop("details", None), operation=operation, collection=collection)
        super().__init__(message, details=details, **kwargs)


class UpstreamUnavailableError(PortfolioAIBaseException):
    """The embedding or completion service failed, timed out or answered with the wrong shape"""

    error_code = "UPSTREAM_UNAVAILABLE"
    http_status = 502

    def __init__(self, message: str, service_name: str = None, status_code: int = None, **kwargs):
        details = _with(kwargs.pop("details", None), service_name=service_name, status_code=status_code)
        super().__init__(message, details=details, **kwargs)


class SchemaDriftError(PortfolioAIBaseException):
    """The store lacks a capability the configuration demands"""

    error_code = "SCHEMA_DRIFT"
    http_status = 503

    def __init__(self, message: str, capability: str = None, **kwargs):
        super().__init__(message, details=_with(kwargs.pop("details", None), capability=capability), **kwargs)


class ConfigurationError(PortfolioAIBaseException):
    error_code = "CONFIGURATION_ERROR"

    def __init__(self, message: str, config_key: str = None, config_value: Any = None, **kwargs):
        value = str(config_value) if config_value is not None else None
        details = _with(kwargs.pop("details", None), config_key=config_key, config_value=value)
        super().__init__(message, details=details, **kwargs)


def map_to_http_exception(exc: PortfolioAIBaseException) -> HTTPException:
    """HTTPException carrying the error payload at the exception's status"""
    return HTTPException(
        status_code=getattr(exc, "http_status", 500),
        detail={"error": exc.to_dict(), "message": exc.message},
    )


def retry_with_logging(
    max_attempts: int = 3,
    backoff_factor: float = 1.0,
    exceptions: tuple = (Exception,),
    logger=None,
):
    """Retry an async call with jittered exponential backoff, logging each failed attempt"""

    def decorator(func):
        @functools.wraps(func)
        async def wrapper(*args, **kwargs):
            attempt = 1
            while True:
                try:
                    return await func(*args, **kwargs)
                except exceptions as e:
                    if attempt >= max_attempts:
                        if logger:
                            logger.error(f"{func.__name__} gave up after {max_attempts} attempts: {e}")
                        raise
                    delay = backoff_factor * (2 ** (attempt - 1)) + uniform(0, backoff_factor)
                    if logger:
                        logger.warning(
                            f"{func.__name__} attempt {attempt}/{max_attempts} failed ({e}); retrying in {delay:.2f}s"
                        )
                    await asyncio.sleep(delay)
                    attempt += 1

        return wrapper

    return decorator
