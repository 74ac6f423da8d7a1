"""Error reporting through Sentry.

Errors reach Sentry only via structlog: :func:`get_sentry_processor` forwards
ERROR-level events and tags them with the request and negotiation ids bound by
:class:`~flancer.observability.middleware.RequestIdMiddleware`.
"""

from __future__ import annotations

import logging

import sentry_sdk
import structlog
from sentry_sdk.integrations.logging import LoggingIntegration
from structlog_sentry import SentryProcessor

# Log context keys promoted to searchable Sentry tags
SENTRY_TAG_KEYS = ["request_id", "negotiation_id", "error"]


def init_sentry(dsn: str, *, environment: str = "development") -> bool:
    """Initialize the Sentry SDK; an empty *dsn* disables reporting.

    Returns:
        ``True`` if the SDK was initialized.
    """
    if not dsn:
        return False

    sentry_sdk.init(
        dsn=dsn,
        environment=environment,
        traces_sample_rate=0.1,
        send_default_pii=False,
        integrations=[
            # structlog-sentry reports errors; the stdlib integration would double them
            LoggingIntegration(event_level=None, level=None),
        ],
    )
    return True


def get_sentry_processor() -> structlog.types.Processor:
    """Return the structlog processor that sends ERROR events to Sentry.

    Place it after ``add_log_level`` so the event level is known.
    """
    return SentryProcessor(event_level=logging.ERROR, tag_keys=SENTRY_TAG_KEYS)
