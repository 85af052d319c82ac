"""Structured routing tokens carried in button and form custom ids."""

import re
from dataclasses import dataclass
from enum import Enum


class DealAction(str, Enum):
    """Interactive actions understood by the orchestrator."""

    CLAIM = "claim"
    CLAIM_MODAL = "claim_modal"
    START_CLAIM = "start_claim"
    CONFIRM_SELLER = "confirm_seller"
    REJECT_SELLER = "reject_seller"
    CANCEL_DEAL = "cancel_deal"
    CONFIRM_DEAL = "confirm_deal"
    UPLOAD_PROOF = "upload_proof"
    UPLOAD_LABEL = "upload_label"
    LABEL_MODAL = "label_modal"
    MY_LISTINGS = "my_listings"
    WITHDRAW_FORM = "withdraw_form"
    WITHDRAW_LISTINGS = "withdraw_listings"


# Panel actions carry the owning actor id instead of a deal id.
ACTOR_SCOPED_ACTIONS = frozenset(
    {DealAction.WITHDRAW_FORM, DealAction.WITHDRAW_LISTINGS}
)
UNSCOPED_ACTIONS = frozenset({DealAction.MY_LISTINGS})

_REF_PATTERN = re.compile(r"^[A-Za-z0-9_-]{1,80}$")

# Discord caps custom ids at 100 characters.
MAX_CUSTOM_ID_LENGTH = 100


@dataclass(frozen=True)
class ActionToken:
    """Parsed ``<action>:<ref>`` custom id."""

    action: DealAction
    ref: str | None = None

    @property
    def deal_id(self) -> str | None:
        """Deal id for deal-scoped actions."""
        if self.action in ACTOR_SCOPED_ACTIONS or self.action in UNSCOPED_ACTIONS:
            return None
        return self.ref

    @property
    def owner_id(self) -> str | None:
        """Owning actor id for panel actions."""
        return self.ref if self.action in ACTOR_SCOPED_ACTIONS else None

    def encode(self) -> str:
        """Return the custom id string for this token."""
        if self.ref is None:
            return self.action.value
        return f"{self.action.value}:{self.ref}"


def action_id(action: DealAction, ref: str | None = None) -> str:
    """Build a custom id for an action."""
    token = ActionToken(action=action, ref=ref)
    encoded = token.encode()
    if len(encoded) > MAX_CUSTOM_ID_LENGTH:
        raise ValueError(f"custom id too long: {encoded}")
    return encoded


def parse_action(custom_id: str | None) -> ActionToken | None:
    """Parse and validate a custom id, returning None when it is not ours."""
    if not custom_id:
        return None
    raw_action, _, ref = custom_id.strip().partition(":")
    try:
        action = DealAction(raw_action)
    except ValueError:
        return None
    if action in UNSCOPED_ACTIONS:
        return ActionToken(action=action) if not ref else None
    if not ref or not _REF_PATTERN.match(ref):
        return None
    return ActionToken(action=action, ref=ref)
