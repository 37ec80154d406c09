"""FastAPI application that admits repository webhooks and schedules site rebuilds"""

from __future__ import annotations

from collections.abc import AsyncIterator
from contextlib import asynccontextmanager
import logging

from fastapi import APIRouter, Depends, FastAPI, Request
from fastapi.responses import PlainTextResponse

from deployhook.models.errors import AuthError
from deployhook.models.settings import ManagerSettings
from deployhook.services.pipeline import BuildQueue, DeploymentCycle
from deployhook.services.process import CommandRunner
from deployhook.services.signature import verify_signature

logger = logging.getLogger(__name__)

SIGNATURE_HEADER = "X-Hub-Signature-256"
EVENT_HEADER = "X-GitHub-Event"
DELIVERY_HEADER = "X-GitHub-Delivery"

_SHUTDOWN_TIMEOUT_SECONDS = 5.0

router = APIRouter()


def get_settings(request: Request) -> ManagerSettings:
    """FastAPI dependency returning the settings the app was created with."""

    return request.app.state.settings


def get_build_queue(request: Request) -> BuildQueue:
    """FastAPI dependency returning the shared single-worker build queue."""

    return request.app.state.build_queue


def _authenticate(request: Request, body: bytes, settings: ManagerSettings) -> None:
    secret = settings.secret_value
    if secret is None:
        logger.debug(
            "Webhook secret not configured; accepting unsigned request",
            extra={"event": "webhook.unsigned"},
        )
    if not verify_signature(body, request.headers.get(SIGNATURE_HEADER), secret):
        raise AuthError("Invalid signature")


async def _auth_error_handler(request: Request, exc: AuthError) -> PlainTextResponse:
    logger.warning(
        "Invalid signature. Ignoring.",
        extra={"event": "webhook.unauthorized", "delivery": request.headers.get(DELIVERY_HEADER)},
    )
    return PlainTextResponse(str(exc) or "Invalid signature", status_code=401)


@router.post("/webhook", response_class=PlainTextResponse)
async def receive_webhook(
    request: Request,
    settings: ManagerSettings = Depends(get_settings),
    build_queue: BuildQueue = Depends(get_build_queue),
) -> PlainTextResponse:
    """Verify the delivery and map its event type to an action."""

    body = await request.body()
    delivery = request.headers.get(DELIVERY_HEADER)
    logger.info("Received webhook request.", extra={"event": "webhook.received", "delivery": delivery})

    _authenticate(request, body, settings)

    event = request.headers.get(EVENT_HEADER)
    if event == "push":
        logger.info("Push event detected. Triggering rebuild.", extra={"event": "webhook.push", "delivery": delivery})
        if build_queue.submit("push"):
            return PlainTextResponse("Rebuild triggered", status_code=202)
        return PlainTextResponse("Rebuild already queued", status_code=202)

    if event == "ping":
        logger.info("Ping event received. Webhook is active.", extra={"event": "webhook.ping", "delivery": delivery})
        return PlainTextResponse("pong", status_code=200)

    logger.info("Ignored event: %s", event, extra={"event": "webhook.ignored", "delivery": delivery})
    return PlainTextResponse("Event ignored", status_code=200)


@router.get("/health", response_class=PlainTextResponse)
def health() -> PlainTextResponse:
    return PlainTextResponse("OK", status_code=200)


def create_app(
    settings: ManagerSettings,
    *,
    runner: CommandRunner | None = None,
    build_queue: BuildQueue | None = None,
) -> FastAPI:
    """Create the webhook application around an explicit settings snapshot."""

    if build_queue is None:
        cycle = DeploymentCycle.from_settings(settings, runner=runner)
        build_queue = BuildQueue(cycle.run)
    queue = build_queue

    @asynccontextmanager
    async def lifespan(_: FastAPI) -> AsyncIterator[None]:
        queue.start()
        if settings.build_on_startup:
            queue.submit("startup")
        try:
            yield
        finally:
            queue.stop(timeout=_SHUTDOWN_TIMEOUT_SECONDS)

    app = FastAPI(title="deployhook", lifespan=lifespan)
    app.state.settings = settings
    app.state.build_queue = queue
    app.add_exception_handler(AuthError, _auth_error_handler)
    app.include_router(router)
    return app


__all__ = ["create_app", "get_build_queue", "get_settings", "router"]
