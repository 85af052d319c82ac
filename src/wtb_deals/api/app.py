"""FastAPI application factory."""

import asyncio
import contextlib
import logging
from collections.abc import AsyncIterator, Awaitable
from contextlib import asynccontextmanager

from fastapi import FastAPI, Header, HTTPException, Request, status

from wtb_deals.api.admin import router as admin_router
from wtb_deals.api.platform_models import (
    ButtonActivated,
    ChannelMessage,
    FormSubmitted,
    PlatformEnvelope,
)
from wtb_deals.app_logging import configure_logging
from wtb_deals.containers import AppContainer
from wtb_deals.domain.actions import DealAction, parse_action
from wtb_deals.domain.errors import DealError, InvalidStateError
from wtb_deals.services.messages import (
    SELECTION_FIELD,
    SELLER_ID_FIELD,
    TRACKING_FIELD,
    VAT_TYPE_FIELD,
    DealReply,
    OutboundMessage,
)

EVENT_DEDUPE_SECONDS = 10 * 60
_GENERIC_ERROR = "Something went wrong. Please try again or contact staff."


def create_app(container: AppContainer) -> FastAPI:
    """Create a FastAPI app configured with dependencies."""
    configure_logging()
    logger = logging.getLogger(__name__)

    @asynccontextmanager
    async def lifespan(app: FastAPI) -> AsyncIterator[None]:
        state_container: AppContainer = app.state.container
        settings = state_container.settings
        sweeper_task = None
        if settings.expiry_sweep_enabled:
            sweeper_task = asyncio.create_task(
                state_container.expiry_sweeper.run_forever(
                    interval_seconds=settings.expiry_sweep_minutes * 60,
                    initial_delay_seconds=settings.expiry_initial_delay_seconds,
                )
            )
        yield
        if sweeper_task is not None:
            sweeper_task.cancel()
            with contextlib.suppress(asyncio.CancelledError):
                await sweeper_task
        await state_container.notifier.drain()
        await state_container.close_resources()

    app = FastAPI(lifespan=lifespan)
    app.state.container = container

    app.include_router(admin_router)

    @app.get("/health")
    async def health() -> dict[str, str]:
        """Simple health check endpoint."""
        return {"status": "ok"}

    @app.post("/platform/events")
    async def platform_events(
        envelope: PlatformEnvelope,
        request: Request,
        x_relay_token: str | None = Header(default=None),
    ) -> dict[str, object]:
        """Handle an event forwarded by the gateway relay."""
        state_container: AppContainer = request.app.state.container
        relay_token = state_container.settings.relay_token
        if relay_token and x_relay_token != relay_token:
            raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED)
        dedupe_key = f"event:{envelope.event_id}"
        if state_container.event_cache.get(dedupe_key) is not None:
            return {"status": "duplicate"}
        state_container.event_cache.set(dedupe_key, True, EVENT_DEDUPE_SECONDS)

        event = envelope.event
        if isinstance(event, ButtonActivated | FormSubmitted):
            if isinstance(event, ButtonActivated):
                handler = _handle_button(state_container, event)
            else:
                handler = _handle_form(state_container, event)
            reply = await _render(state_container, handler, logger, event.actor_id)
            return {"status": "ok", "reply": (reply or DealReply()).to_dict()}

        if event.author_is_bot or not event.attachments:
            return {"status": "ignored"}
        artifacts = [attachment.to_domain() for attachment in event.attachments]
        if isinstance(event, ChannelMessage):
            handler = state_container.deal_service.record_evidence(
                event.channel_id, event.actor_id, event.message_id, artifacts
            )
        else:
            handler = state_container.deal_service.handle_direct_upload(
                event.actor_id, event.channel_id, artifacts
            )
        reply = await _render(state_container, handler, logger, event.actor_id)
        if reply is None:
            return {"status": "ignored"}
        await state_container.notifier.send(
            event.channel_id,
            OutboundMessage(content=reply.content, components=reply.components or None),
        )
        return {"status": "ok"}

    return app


async def _render(
    state_container: AppContainer,
    handler: Awaitable[DealReply | None],
    logger: logging.Logger,
    actor_id: str,
) -> DealReply | None:
    """Await a handler and turn failures into the single user-facing reply."""
    try:
        return await handler
    except DealError as exc:
        logger.info(
            "Deal action rejected",
            extra={"actor_id": actor_id, "error": type(exc).__name__},
        )
        return DealReply(content=f"❌ {exc.user_message}")
    except Exception as exc:
        logger.exception(
            "Failed to handle platform event", extra={"actor_id": actor_id}
        )
        return DealReply(content=_format_error(state_container, exc, _GENERIC_ERROR))


def _format_error(state_container: AppContainer, exc: Exception, fallback: str) -> str:
    """Return a user-facing error message with local debug info."""
    if state_container.settings.environment == "local":
        detail = f"{type(exc).__name__}: {exc}".strip()
        if detail:
            return f"{fallback} (debug: {detail})"
    return fallback


async def _handle_button(  # noqa: PLR0911
    state_container: AppContainer, event: ButtonActivated
) -> DealReply:
    token = parse_action(event.custom_id)
    if token is None:
        return DealReply(content="This button is no longer active.")
    deals = state_container.deal_service
    listings = state_container.listing_service
    deal_id = token.deal_id or ""
    if token.action == DealAction.CLAIM:
        return deals.claim_form(deal_id)
    if token.action == DealAction.START_CLAIM:
        return deals.present_identity(deal_id, event.actor_id)
    if token.action == DealAction.CONFIRM_SELLER:
        return await deals.confirm_identity(
            deal_id, event.actor_id, event.channel_id, event.message_id
        )
    if token.action == DealAction.REJECT_SELLER:
        return await deals.reject_identity(
            deal_id, event.actor_id, event.channel_id, event.message_id
        )
    if token.action == DealAction.CANCEL_DEAL:
        return await deals.cancel(
            deal_id, event.actor_id, event.actor_roles, event.channel_id
        )
    if token.action == DealAction.CONFIRM_DEAL:
        return await deals.approve(
            deal_id,
            event.actor_id,
            event.actor_roles,
            event.channel_id,
            event.message_id,
        )
    if token.action == DealAction.UPLOAD_PROOF:
        return deals.start_proof_upload(deal_id, event.actor_id)
    if token.action == DealAction.UPLOAD_LABEL:
        return deals.label_form(deal_id, event.actor_id)
    if token.action == DealAction.MY_LISTINGS:
        return listings.panel(event.actor_id)
    if token.action == DealAction.WITHDRAW_FORM:
        return listings.withdraw_form(token.owner_id or "", event.actor_id)
    raise InvalidStateError("This action is not available from a button.")


async def _handle_form(
    state_container: AppContainer, event: FormSubmitted
) -> DealReply:
    token = parse_action(event.custom_id)
    if token is None:
        return DealReply(content="This form is no longer active.")
    values = event.field_values
    if token.action == DealAction.CLAIM_MODAL:
        return await state_container.deal_service.claim(
            token.deal_id or "",
            event.actor_id,
            values.get(SELLER_ID_FIELD),
            values.get(VAT_TYPE_FIELD),
        )
    if token.action == DealAction.LABEL_MODAL:
        return state_container.deal_service.submit_tracking_code(
            token.deal_id or "", event.actor_id, values.get(TRACKING_FIELD)
        )
    if token.action == DealAction.WITHDRAW_LISTINGS:
        return await state_container.listing_service.withdraw(
            token.owner_id or "", event.actor_id, values.get(SELECTION_FIELD)
        )
    raise InvalidStateError("This action is not available from a form.")
