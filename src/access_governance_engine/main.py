"""Access Governance Engine service entry point.

Initializes the FastAPI application with:
- structlog logging
- the governance store backing every service (in-memory)
- the event sink: Kafka when enabled, otherwise an in-process recorder
- the notification sender: the HTTP mail API when configured, otherwise an outbox
- exception handlers mapping engine errors onto HTTP status codes
"""

from collections.abc import AsyncGenerator
from contextlib import asynccontextmanager

from fastapi import FastAPI, Request
from fastapi.responses import JSONResponse

from access_governance_engine import __version__
from access_governance_engine.adapters.email import HttpEmailSender
from access_governance_engine.adapters.kafka import KafkaEventSink
from access_governance_engine.adapters.memory import (
    InMemoryGovernanceStore,
    InMemoryOutbox,
    RecordingEventSink,
)
from access_governance_engine.api.router import router
from access_governance_engine.core.errors import (
    ConflictError,
    GovernanceError,
    NotFoundError,
    ValidationError,
)
from access_governance_engine.core.interfaces import IEventSink, INotificationSender
from access_governance_engine.observability import configure_logging, get_logger
from access_governance_engine.settings import Settings

logger = get_logger(__name__)


def _build_event_sink(settings: Settings) -> IEventSink:
    if settings.kafka_enabled:
        return KafkaEventSink(
            bootstrap_servers=settings.kafka_bootstrap_servers,
            topic_prefix=settings.kafka_topic_prefix,
            source_service=settings.service_name,
        )
    return RecordingEventSink()


def _build_notifier(settings: Settings) -> INotificationSender:
    if settings.email_api_url:
        return HttpEmailSender(
            api_url=settings.email_api_url,
            api_token=settings.email_api_token,
            timeout_seconds=settings.email_timeout_seconds,
        )
    return InMemoryOutbox()


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncGenerator[None, None]:
    """Manage application startup and shutdown lifecycle.

    Starts the Kafka producer when the Kafka sink is in use and stops it on
    shutdown.

    Args:
        app: The FastAPI application instance.

    Yields:
        None
    """
    event_sink = app.state.event_sink
    if isinstance(event_sink, KafkaEventSink):
        logger.info("Starting Kafka event sink", bootstrap_servers=app.state.settings.kafka_bootstrap_servers)
        await event_sink.start()

    logger.info("Access governance engine startup complete", service=app.state.settings.service_name)

    yield

    logger.info("Shutting down access governance engine")
    if isinstance(event_sink, KafkaEventSink):
        await event_sink.stop()
    logger.info("Access governance engine shutdown complete")


async def _not_found_handler(request: Request, exc: NotFoundError) -> JSONResponse:
    return JSONResponse(status_code=404, content={"detail": exc.message})


async def _validation_handler(request: Request, exc: ValidationError) -> JSONResponse:
    return JSONResponse(status_code=422, content={"detail": exc.message, "field": exc.field})


async def _conflict_handler(request: Request, exc: ConflictError) -> JSONResponse:
    return JSONResponse(status_code=409, content={"detail": exc.message})


async def _governance_error_handler(request: Request, exc: GovernanceError) -> JSONResponse:
    logger.warning("Unhandled governance error", path=request.url.path, error=exc.message)
    return JSONResponse(status_code=400, content={"detail": exc.message})


def create_app(
    settings: Settings | None = None,
    store: InMemoryGovernanceStore | None = None,
    event_sink: IEventSink | None = None,
    notifier: INotificationSender | None = None,
) -> FastAPI:
    """Build the FastAPI application.

    Collaborators are attached to app.state at construction time so the
    routers' dependency factories can reach them. Any collaborator not passed
    in is built from settings.

    Args:
        settings: Service settings. Read from the environment when omitted.
        store: Governance store shared by every service.
        event_sink: Destination of domain events.
        notifier: Outbound email sender.

    Returns:
        The configured application.
    """
    settings = settings or Settings()
    configure_logging(settings.log_level, json_logs=settings.log_json)

    app = FastAPI(title=settings.service_name, version=__version__, lifespan=lifespan)
    app.state.settings = settings
    app.state.store = store or InMemoryGovernanceStore(report_base_path=settings.report_base_path)
    app.state.event_sink = event_sink or _build_event_sink(settings)
    app.state.notifier = notifier or _build_notifier(settings)

    app.add_exception_handler(NotFoundError, _not_found_handler)  # type: ignore[arg-type]
    app.add_exception_handler(ValidationError, _validation_handler)  # type: ignore[arg-type]
    app.add_exception_handler(ConflictError, _conflict_handler)  # type: ignore[arg-type]
    app.add_exception_handler(GovernanceError, _governance_error_handler)  # type: ignore[arg-type]

    @app.get("/health", tags=["health"])
    async def health() -> dict[str, str]:
        return {"status": "ok", "service": settings.service_name, "version": __version__}

    app.include_router(router, prefix="/api/v1")
    return app


app: FastAPI = create_app()
