"""
Error reporting sinks.

The sink is chosen once at startup from configuration: Sentry when a DSN
is configured, otherwise a sink that only logs.
"""
from typing import Any, Dict, Optional, Protocol

import sentry_sdk

from app.utils import get_logger


log = get_logger(__name__)


class ErrorSink(Protocol):
    def capture(self, error: BaseException, context: Optional[Dict[str, Any]] = None) -> None:
        ...


class NullErrorSink:
    """Drops errors after logging them."""

    def capture(self, error: BaseException, context: Optional[Dict[str, Any]] = None) -> None:
        log.debug(f"Error not reported (no sink configured): {error!r}")


class SentryErrorSink:
    """Reports errors to Sentry. PII is never sent."""

    def __init__(self, dsn: str, environment: str = "development"):
        sentry_sdk.init(
            dsn=dsn,
            environment=environment,
            send_default_pii=False,
            attach_stacktrace=True,
            max_breadcrumbs=50,
        )
        log.info(f"Sentry error reporting enabled ({environment})")

    def capture(self, error: BaseException, context: Optional[Dict[str, Any]] = None) -> None:
        with sentry_sdk.new_scope() as scope:
            for key, value in (context or {}).items():
                scope.set_tag(key, value)
            sentry_sdk.capture_exception(error)


def build_error_sink(dsn: Optional[str], environment: str) -> ErrorSink:
    if dsn:
        return SentryErrorSink(dsn, environment)
    return NullErrorSink()
