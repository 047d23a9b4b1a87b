"""FastAPI server exposing the wager lifecycle operations."""

import logging
from contextlib import asynccontextmanager
from typing import Optional

from fastapi import Depends, FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from wagerbook import __version__
from wagerbook.config import Settings, get_settings
from wagerbook.database import check_db_connection
from wagerbook.observability import initialize_logfire
from wagerbook.schemas import (
    DeclareOutcomeRequest,
    EditWagerRequest,
    OperationResult,
    ProposeWagerRequest,
    RespondRequest,
)
from wagerbook.services import (
    NotificationDispatcher,
    Notifier,
    StaticIdentity,
    WagerLifecycleService,
    WagerQueryService,
    create_notifier,
)
from wagerbook.store import EntityStore, SqlAlchemyEntityStore

logger = logging.getLogger(__name__)

ERROR_STATUS_CODES = {
    "validation_error": 422,
    "authorization_error": 403,
    "not_found": 404,
    "invalid_transition": 409,
    "opponent_not_found": 409,
    "transient_store_error": 503,
    "store_error": 500,
}


def _respond(result: OperationResult, success_status: int = 200) -> JSONResponse:
    """Render an OperationResult with the status code its outcome maps to."""
    if result.ok:
        status_code = success_status
    else:
        status_code = ERROR_STATUS_CODES.get(result.error.code, 400)
    return JSONResponse(status_code=status_code, content=result.model_dump(mode="json"))


def create_app(
    settings: Optional[Settings] = None,
    store: Optional[EntityStore] = None,
    notifier: Optional[Notifier] = None,
) -> FastAPI:
    """
    Build the API application.

    ``store`` and ``notifier`` default to the ones described by
    ``settings``. The app owns both for its lifetime and releases them
    on shutdown.
    """
    settings = settings or get_settings()

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        app.state.store = store or SqlAlchemyEntityStore.from_config(settings.database)
        app.state.dispatcher = NotificationDispatcher(
            notifier or create_notifier(settings.notifications)
        )

        initialize_logfire(
            settings,
            engine=getattr(app.state.store, "engine", None),
            app=app,
        )
        await app.state.store.create_schema()
        logger.info(f"Wagerbook API {__version__} started ({settings.environment})")

        yield

        logger.info("Shutting down Wagerbook API")
        await app.state.dispatcher.drain()
        await app.state.dispatcher.notifier.close()
        await app.state.store.dispose()

    app = FastAPI(
        title="Wagerbook API",
        description="Peer-to-peer wagers with mutual outcome agreement",
        version=__version__,
        lifespan=lifespan,
    )

    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.api.allowed_origins,
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    def caller_identity(request: Request) -> StaticIdentity:
        return StaticIdentity(request.headers.get(settings.api.identity_header))

    def lifecycle(
        request: Request,
        identity: StaticIdentity = Depends(caller_identity),
    ) -> WagerLifecycleService:
        return WagerLifecycleService(
            request.app.state.store,
            identity,
            dispatcher=request.app.state.dispatcher,
            config=settings.lifecycle,
        )

    def queries(
        request: Request,
        identity: StaticIdentity = Depends(caller_identity),
    ) -> WagerQueryService:
        return WagerQueryService(
            request.app.state.store,
            identity,
            dispatcher=request.app.state.dispatcher,
            config=settings.lifecycle,
        )

    # ========================================================================
    # Health
    # ========================================================================

    @app.get("/health", tags=["Health"])
    async def health_check(request: Request) -> dict[str, str]:
        engine = getattr(request.app.state.store, "engine", None)
        db_connected = engine is not None and await check_db_connection(engine)
        return {
            "status": "healthy" if db_connected else "degraded",
            "service": "wagerbook-api",
            "version": __version__,
            "database": "connected" if db_connected else "disconnected",
        }

    # ========================================================================
    # Wagers
    # ========================================================================

    @app.post("/api/wagers", tags=["Wagers"])
    async def propose_wager(
        body: ProposeWagerRequest,
        service: WagerLifecycleService = Depends(lifecycle),
    ):
        result = await service.propose_wager(
            description=body.description,
            stake=body.stake,
            due_date=body.due_date,
            responder_ids=body.responder_ids,
        )
        return _respond(result, success_status=201)

    @app.get("/api/wagers", tags=["Wagers"])
    async def list_wagers(
        status: Optional[str] = None,
        limit: int = 100,
        service: WagerQueryService = Depends(queries),
    ):
        return _respond(await service.list_wagers(status=status, limit=limit))

    @app.get("/api/wagers/{wager_id}", tags=["Wagers"])
    async def get_wager(wager_id: str, service: WagerQueryService = Depends(queries)):
        return _respond(await service.get_wager(wager_id))

    @app.patch("/api/wagers/{wager_id}", tags=["Wagers"])
    async def edit_wager(
        wager_id: str,
        body: EditWagerRequest,
        service: WagerLifecycleService = Depends(lifecycle),
    ):
        changes = {
            field: getattr(body, field)
            for field in body.model_fields_set
            if field in ("description", "stake", "due_date")
        }
        return _respond(await service.edit_wager(wager_id, **changes))

    @app.delete("/api/wagers/{wager_id}", tags=["Wagers"])
    async def delete_wager(wager_id: str, service: WagerLifecycleService = Depends(lifecycle)):
        return _respond(await service.delete_wager(wager_id))

    @app.post("/api/wagers/{wager_id}/cancel", tags=["Wagers"])
    async def cancel_wager(wager_id: str, service: WagerLifecycleService = Depends(lifecycle)):
        return _respond(await service.cancel_wager(wager_id))

    # ========================================================================
    # Participants
    # ========================================================================

    @app.post("/api/participants/{participant_id}/respond", tags=["Participants"])
    async def respond_to_invitation(
        participant_id: str,
        body: RespondRequest,
        service: WagerLifecycleService = Depends(lifecycle),
    ):
        return _respond(await service.respond_to_invitation(participant_id, body.accept))

    @app.post("/api/participants/{participant_id}/declare", tags=["Participants"])
    async def declare_outcome(
        participant_id: str,
        body: DeclareOutcomeRequest,
        service: WagerLifecycleService = Depends(lifecycle),
    ):
        return _respond(await service.declare_outcome(participant_id, body.outcome))

    @app.post("/api/participants/{participant_id}/confirm", tags=["Participants"])
    async def confirm_outcome(participant_id: str, service: WagerLifecycleService = Depends(lifecycle)):
        return _respond(await service.confirm_outcome(participant_id))

    @app.post("/api/participants/{participant_id}/dispute", tags=["Participants"])
    async def dispute_outcome(participant_id: str, service: WagerLifecycleService = Depends(lifecycle)):
        return _respond(await service.dispute_outcome(participant_id))

    # ========================================================================
    # Activity
    # ========================================================================

    @app.get("/api/activity", tags=["Activity"])
    async def list_activity(limit: int = 50, service: WagerQueryService = Depends(queries)):
        return _respond(await service.list_activity(limit=limit))

    return app
