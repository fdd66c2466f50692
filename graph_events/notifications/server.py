"""FastAPI webhook server for Graph change notifications delivered by Event Grid."""

from contextlib import asynccontextmanager
from typing import Any

from fastapi import FastAPI, HTTPException, Request, Response
from fastapi.responses import JSONResponse
from pydantic import ValidationError

from graph_events.config import (
    AZURE_CLIENT_ID,
    AZURE_CLIENT_SECRET,
    AZURE_TENANT_ID,
    DELTA_SETTLE_SECONDS,
    SERIALIZE_GROUP_DIFFS,
    SUBSCRIPTION_CLIENT_STATE,
    SUBSCRIPTION_EXPIRATION_MINUTES,
    VERIFY_CLIENT_STATE,
    EventGridSettings,
)
from graph_events.directory.protocol import DirectoryClient
from graph_events.notifications.delta import MembershipDeltaEngine
from graph_events.notifications.dispatcher import (
    REQUEST_ORIGIN_HEADER,
    REQUEST_RATE_HEADER,
    NotificationDispatcher,
    validation_headers,
)
from graph_events.notifications.handlers import NotificationHandlers
from graph_events.notifications.locks import KeyedLock
from graph_events.notifications.models import CloudEventNotification
from graph_events.notifications.subscription import SubscriptionManager, SubscriptionStatus
from graph_events.utils.logger import get_logger

logger = get_logger("graph_events.notifications.server")

HANDLER_ENDPOINT = "/notifications"

_ACCEPTED = '{"status":"accepted"}'


def _problem(detail: str, status_code: int = 500) -> JSONResponse:
    """RFC 7807 problem response."""
    return JSONResponse(
        status_code=status_code,
        content={
            "type": "about:blank",
            "title": "An error occurred while processing your request.",
            "status": status_code,
            "detail": detail,
        },
        media_type="application/problem+json",
    )


def _wire_components(
    app: FastAPI,
    client: DirectoryClient,
    event_grid: EventGridSettings,
    settle_seconds: float,
    serialize_group_diffs: bool,
) -> None:
    """Build subscription manager, delta engine, handlers and dispatcher on app.state."""
    subscriptions = SubscriptionManager(
        client,
        event_grid,
        client_state=SUBSCRIPTION_CLIENT_STATE,
        expiration_minutes=SUBSCRIPTION_EXPIRATION_MINUTES,
    )
    delta_engine = MembershipDeltaEngine(
        client,
        settle_seconds=settle_seconds,
        locks=KeyedLock() if serialize_group_diffs else None,
    )
    handlers = NotificationHandlers(client, delta_engine, subscriptions)
    app.state.client = client
    app.state.subscriptions = subscriptions
    app.state.dispatcher = NotificationDispatcher(
        handlers.as_mapping(),
        client_state=SUBSCRIPTION_CLIENT_STATE if VERIFY_CLIENT_STATE else None,
    )


def _setup_client() -> DirectoryClient | None:
    """Create the Graph directory client from AZURE_* credentials."""
    from graph_events.directory.graph_real import GraphDirectoryClient

    if not AZURE_TENANT_ID or not AZURE_CLIENT_ID:
        logger.warning("webhook.lifespan.no_credentials")
        return None
    logger.info("webhook.lifespan.creating_client")
    return GraphDirectoryClient.from_credentials(
        tenant_id=AZURE_TENANT_ID,
        client_id=AZURE_CLIENT_ID,
        client_secret=AZURE_CLIENT_SECRET or None,
    )


def create_app(
    client: DirectoryClient | None = None,
    event_grid: EventGridSettings | None = None,
    settle_seconds: float = DELTA_SETTLE_SECONDS,
    serialize_group_diffs: bool = SERIALIZE_GROUP_DIFFS,
) -> FastAPI:
    """
    Create FastAPI app. When `client` is None the lifespan builds a Graph client
    from AZURE_* credentials; otherwise the given client (e.g. InMemoryDirectory) is used.
    """
    event_grid = event_grid or EventGridSettings.from_env()

    @asynccontextmanager
    async def _lifespan(app: FastAPI):
        if getattr(app.state, "dispatcher", None) is None:
            graph_client = _setup_client()
            if graph_client is not None:
                _wire_components(app, graph_client, event_grid, settle_seconds, serialize_group_diffs)
        yield

    app = FastAPI(
        title="Graph Event Grid Notifications",
        version="0.1.0",
        lifespan=_lifespan,
    )
    app.state.dispatcher = None
    app.state.subscriptions = None
    if client is not None:
        _wire_components(app, client, event_grid, settle_seconds, serialize_group_diffs)

    @app.get("/health")
    async def health() -> dict[str, Any]:
        dispatcher: NotificationDispatcher | None = app.state.dispatcher
        return {
            "status": "ok" if dispatcher is not None else "unconfigured",
            "failures": dict(dispatcher.failures) if dispatcher is not None else {},
        }

    @app.options(HANDLER_ENDPOINT)
    async def validate_endpoint(request: Request) -> Response:
        # https://github.com/cloudevents/spec/blob/v1.0/http-webhook.md#4-abuse-protection
        headers = validation_headers(
            request.headers.get(REQUEST_ORIGIN_HEADER),
            request.headers.get(REQUEST_RATE_HEADER),
        )
        logger.info("webhook.validation", allowed_origin=headers.get("WebHook-Allowed-Origin"))
        return Response(status_code=200, headers=headers)

    @app.post(HANDLER_ENDPOINT)
    async def handle_notifications(request: Request) -> Response:
        accepted = Response(status_code=202, content=_ACCEPTED, media_type="application/json")
        try:
            body = await request.json()
        except ValueError as e:
            logger.warning("webhook.notifications.parse_error", error=str(e))
            return accepted

        envelopes = body if isinstance(body, list) else [body]
        notifications: list[CloudEventNotification] = []
        for envelope in envelopes:
            try:
                notifications.append(CloudEventNotification.model_validate(envelope))
            except ValidationError as e:
                logger.warning("webhook.notifications.invalid_envelope", error=str(e))

        dispatcher: NotificationDispatcher | None = request.app.state.dispatcher
        if dispatcher is None:
            logger.error("webhook.notifications.no_client", dropped=len(notifications))
            return accepted

        outcomes = await dispatcher.dispatch_many(notifications)
        logger.debug("webhook.notifications.dispatched", outcomes=[o.value for o in outcomes])
        return accepted

    @app.get(HANDLER_ENDPOINT + "/create/{id}", response_model=None)
    async def create_subscription(id: str, request: Request) -> dict[str, Any] | JSONResponse:
        subscriptions: SubscriptionManager | None = request.app.state.subscriptions
        if subscriptions is None:
            return _problem("Graph client not configured.", status_code=503)
        result = await subscriptions.create(id)
        if result.status is SubscriptionStatus.CREATED:
            return {
                "message": result.message,
                "subscriptionId": result.subscription_id,
                "resource": result.resource,
            }
        if result.status in (
            SubscriptionStatus.INVALID,
            SubscriptionStatus.CONFLICT,
            SubscriptionStatus.EMPTY_RESPONSE,
        ):
            raise HTTPException(status_code=400, detail=result.message)
        return _problem(result.message)

    @app.get(HANDLER_ENDPOINT + "/delete/{id}", response_model=None)
    async def delete_subscription(id: str, request: Request) -> dict[str, Any] | JSONResponse:
        subscriptions: SubscriptionManager | None = request.app.state.subscriptions
        if subscriptions is None:
            return _problem("Graph client not configured.", status_code=503)
        result = await subscriptions.delete(id)
        if result.status is SubscriptionStatus.DELETED:
            return {"message": result.message, "subscriptionId": result.subscription_id}
        if result.status is SubscriptionStatus.INVALID:
            raise HTTPException(status_code=400, detail=result.message)
        if result.status is SubscriptionStatus.NOT_FOUND:
            raise HTTPException(status_code=404, detail=result.message)
        return _problem(result.message)

    return app

