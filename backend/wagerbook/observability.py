"""Logfire observability initialization and instrumentation."""

import logging

import logfire

from wagerbook import __version__
from wagerbook.config import Settings

logger = logging.getLogger(__name__)


def initialize_logfire(settings: Settings, engine=None, app=None) -> None:
    """
    Initialize Logfire with instrumentation.

    Must be called ONCE at application startup.

    This function configures Logfire cloud tracking and instruments:
    - SQLAlchemy (entity store transactions, when ``engine`` is given)
    - FastAPI (request spans, when ``app`` is given)
    - HTTPX clients (webhook notifications)
    - Python logging (bridges to Logfire)

    Without a token, Logfire is configured locally so spans are still
    created but nothing is sent.
    """
    if not settings.logfire_token:
        logfire.configure(send_to_logfire=False, console=False)
        logger.debug("Logfire token not set - spans stay local")
        return

    try:
        logfire.configure(
            token=settings.logfire_token,
            service_name="wagerbook",
            service_version=__version__,
            environment=settings.environment,
        )

        if engine is not None:
            logfire.instrument_sqlalchemy(engine=engine.sync_engine)

        if app is not None:
            logfire.instrument_fastapi(app)

        logfire.instrument_httpx()

        root_logger = logging.getLogger()
        root_logger.addHandler(logfire.LogfireLoggingHandler())

        logger.info("✓ Logfire cloud tracking initialized")

    except Exception as e:
        logger.warning(f"Failed to initialize Logfire: {e}")
        # Continue running - observability is optional
