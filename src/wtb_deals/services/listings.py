"""Requester-side listing panel: list and withdraw open WTBs."""

import logging
import re
from dataclasses import dataclass, field

from wtb_deals.domain.actions import DealAction, action_id
from wtb_deals.domain.deals import UNCLAIMED_STATUSES, Deal, DealQuery
from wtb_deals.domain.errors import (
    InvalidStateError,
    SessionExpiredError,
    UnauthorizedError,
)
from wtb_deals.services.cache import Cache, InMemoryCache
from wtb_deals.services.deals import DealRepository
from wtb_deals.services.messages import (
    BUTTON_DANGER,
    DealReply,
    action_row,
    button,
    format_listing_panel,
    withdraw_modal,
)
from wtb_deals.services.notifications import NotificationDispatcher
from wtb_deals.services.transitions import DealEvent, can_apply, next_status

logger = logging.getLogger(__name__)

_SELECTION_SPLIT = re.compile(r"[\s,;]+")


def parse_selection(raw: str | None, size: int) -> list[int]:
    """Parse ``"1, 3 4"`` into sorted zero-based indexes."""
    indexes: set[int] = set()
    for chunk in _SELECTION_SPLIT.split((raw or "").strip()):
        if not chunk:
            continue
        if not chunk.isdigit() or not 1 <= int(chunk) <= size:
            raise InvalidStateError(
                f"'{chunk}' is not a number from your list (1-{size})."
            )
        indexes.add(int(chunk) - 1)
    if not indexes:
        raise InvalidStateError("Select at least 1 WTB to withdraw.")
    return sorted(indexes)


@dataclass
class ListingService:
    """Lets a requester withdraw listings nobody has claimed yet."""

    deals: DealRepository
    notifier: NotificationDispatcher
    cache: Cache = field(default_factory=InMemoryCache)
    view_ttl_seconds: float = 15 * 60
    limit: int = 25

    def active_listings(self, actor_id: str) -> list[Deal]:
        """Return the requester's open listings and remember their numbering."""
        deals = self.deals.query(
            DealQuery(
                statuses=UNCLAIMED_STATUSES,
                claimed_channel_blank=True,
                buyer_discord_id=actor_id,
                limit=self.limit,
            )
        )
        self.cache.set(
            _view_key(actor_id), [deal.id for deal in deals], self.view_ttl_seconds
        )
        return deals

    def panel(self, actor_id: str) -> DealReply:
        """Render the numbered list with a withdraw button."""
        deals = self.active_listings(actor_id)
        components = []
        if deals:
            components.append(
                action_row(
                    button(
                        "Withdraw WTBs",
                        action_id(DealAction.WITHDRAW_FORM, actor_id),
                        style=BUTTON_DANGER,
                    )
                )
            )
        return DealReply(content=format_listing_panel(deals), components=components)

    def withdraw_form(self, owner_id: str, actor_id: str) -> DealReply:
        """Return the selection modal for the panel owner."""
        if owner_id != actor_id:
            raise UnauthorizedError("This panel is not for you.")
        return DealReply(modal=withdraw_modal(owner_id))

    async def withdraw(
        self, owner_id: str, actor_id: str, selection: str | None
    ) -> DealReply:
        """Withdraw the selected listings from the cached numbered view."""
        if owner_id != actor_id:
            raise UnauthorizedError("This panel is not for you.")
        view = self.cache.get(_view_key(actor_id))
        if not isinstance(view, list):
            raise SessionExpiredError(
                "Your WTB list expired. Open My WTBs again to refresh it."
            )
        withdrawn: list[Deal] = []
        skipped = 0
        for index in parse_selection(selection, len(view)):
            deal = self.deals.get(view[index])
            if deal is None or deal.buyer_discord_id != actor_id:
                skipped += 1
                continue
            if deal.is_claimed or not can_apply(deal, DealEvent.WITHDRAW):
                skipped += 1
                continue
            changed = self.deals.update(
                deal.id,
                {"status": next_status(deal, DealEvent.WITHDRAW)},
                expect={"status": deal.status, "claimed_channel_id": None},
            )
            if not changed:
                skipped += 1
                continue
            withdrawn.append(deal)
            await self.notifier.set_listing_claim_enabled(deal, enabled=False)
        logger.info(
            "Listings withdrawn",
            extra={"actor_id": actor_id, "withdrawn": len(withdrawn)},
        )
        content = f"✅ Withdrew **{len(withdrawn)}** WTB(s)."
        if skipped:
            content += f" {skipped} could not be withdrawn because they changed."
        return DealReply(content=content)


def _view_key(actor_id: str) -> str:
    return f"listings:{actor_id}"
