import logging
from dataclasses import dataclass
from typing import Optional

from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from .config import Settings, settings as default_settings
from .database import SessionLocal, init_db
from .errors import PortalError
from .notifications.dispatcher import NotificationDispatcher, RetryPolicy
from .notifications.transport import EmailTransport, ResendTransport
from .notifications.worker import NotificationWorker
from .routers import gallery, moderation, submissions
from .services.authorization import IdentityProvider, TrustedHeaderIdentityProvider
from .services.intake import SubmissionIntake
from .services.moderation import ModerationService
from .services.search_indexer import SearchIndexerBridge
from .utils.supermemory import SupermemoryClient

logger = logging.getLogger(__name__)


@dataclass
class PortalServices:
    identity: IdentityProvider
    intake: SubmissionIntake
    moderation: ModerationService
    indexer: SearchIndexerBridge
    dispatcher: NotificationDispatcher
    worker: NotificationWorker


def configure_logging(level: str = "INFO") -> None:
    logging.basicConfig(
        level=getattr(logging, level.upper(), logging.INFO),
        format="%(asctime)s %(name)-32s %(levelname)-8s %(message)s",
        datefmt="%Y-%m-%d %H:%M:%S",
    )


def build_services(
    settings: Settings,
    session_factory,
    transport: Optional[EmailTransport] = None,
    search_client: Optional[SupermemoryClient] = None,
    identity: Optional[IdentityProvider] = None,
) -> PortalServices:
    """Wire the pipeline; secrets and endpoints come only from ``settings``"""
    transport = transport or ResendTransport(
        api_key=settings.resend_api_key,
        sender=settings.email_from,
        api_url=settings.resend_api_url,
        timeout=settings.email_timeout_seconds,
    )
    search_client = search_client or SupermemoryClient(
        base_url=settings.supermemory_url,
        api_key=settings.supermemory_api_key,
        timeout=settings.search_timeout_seconds,
    )

    dispatcher = NotificationDispatcher(
        transport,
        session_factory,
        retry_policy=RetryPolicy(
            max_attempts=settings.email_max_attempts,
            base_delay=settings.email_backoff_base_seconds,
            max_delay=settings.email_backoff_max_seconds,
        ),
        sender=settings.email_from,
    )
    indexer = SearchIndexerBridge(
        search_client, max_attempts=settings.index_max_attempts
    )
    worker = NotificationWorker(
        dispatcher,
        session_factory,
        indexer=indexer,
        poll_interval=settings.worker_poll_seconds,
        claim_timeout=settings.worker_claim_timeout_seconds,
    )

    return PortalServices(
        identity=identity or TrustedHeaderIdentityProvider(),
        intake=SubmissionIntake(settings.photo_categories),
        moderation=ModerationService(
            worker, portal_name=settings.portal_name
        ),
        indexer=indexer,
        dispatcher=dispatcher,
        worker=worker,
    )


def create_app(
    settings: Settings = default_settings,
    session_factory=None,
    services: Optional[PortalServices] = None,
) -> FastAPI:
    session_factory = session_factory or SessionLocal
    services = services or build_services(settings, session_factory)

    app = FastAPI(
        title="Community Portal API",
        description="Photo submissions, moderation and gallery search",
        version="1.0.0",
    )
    app.state.settings = settings
    app.state.session_factory = session_factory
    app.state.services = services

    # CORS middleware
    app.add_middleware(
        CORSMiddleware,
        allow_origins=["*"],
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    # Include routers
    app.include_router(submissions.router)
    app.include_router(gallery.router)
    app.include_router(moderation.router)

    @app.exception_handler(PortalError)
    async def portal_error_handler(request: Request, exc: PortalError):
        return JSONResponse(status_code=exc.status_code, content={"detail": exc.message})

    @app.on_event("startup")
    def on_startup():
        init_db(bind=session_factory.kw.get("bind"))
        if settings.notifications_background:
            services.worker.start()

    @app.on_event("shutdown")
    def on_shutdown():
        services.worker.stop()

    @app.get("/")
    def root():
        return {"message": "Community Portal API is running"}

    return app


configure_logging(default_settings.log_level)
app = create_app()
