"""Deal lifecycle transition table."""

from dataclasses import dataclass
from enum import Enum

from wtb_deals.domain.deals import UNCLAIMED_STATUSES, Deal, DealStatus
from wtb_deals.domain.errors import InvalidStateError


class DealEvent(str, Enum):
    """Normalized events that move a deal through its lifecycle."""

    CLAIM = "claim"
    CONFIRM_IDENTITY = "confirm_identity"
    RECORD_EVIDENCE = "record_evidence"
    APPROVE = "approve"
    UPLOAD_PROOF = "upload_proof"
    SUBMIT_TRACKING = "submit_tracking"
    UPLOAD_LABEL = "upload_label"
    CANCEL = "cancel"
    EXPIRE = "expire"
    WITHDRAW = "withdraw"


@dataclass(frozen=True)
class Transition:
    """Allowed source statuses and the resulting status of an event.

    A ``target`` of None keeps the current status; cancel resolves its
    target from the deal's pre-claim status.
    """

    sources: frozenset[DealStatus]
    target: DealStatus | None
    hint: str


_IN_PROGRESS = frozenset({DealStatus.CLAIM_PROCESSING})
_NOT_ACTIVE_HINT = "This deal is not being processed anymore."

TRANSITIONS: dict[DealEvent, Transition] = {
    DealEvent.CLAIM: Transition(
        UNCLAIMED_STATUSES,
        DealStatus.CLAIM_PROCESSING,
        "This deal is no longer available to claim.",
    ),
    DealEvent.CONFIRM_IDENTITY: Transition(_IN_PROGRESS, None, _NOT_ACTIVE_HINT),
    DealEvent.RECORD_EVIDENCE: Transition(_IN_PROGRESS, None, _NOT_ACTIVE_HINT),
    DealEvent.APPROVE: Transition(_IN_PROGRESS, None, _NOT_ACTIVE_HINT),
    DealEvent.UPLOAD_PROOF: Transition(_IN_PROGRESS, None, _NOT_ACTIVE_HINT),
    DealEvent.SUBMIT_TRACKING: Transition(_IN_PROGRESS, None, _NOT_ACTIVE_HINT),
    DealEvent.UPLOAD_LABEL: Transition(
        _IN_PROGRESS, DealStatus.COMPLETED, _NOT_ACTIVE_HINT
    ),
    DealEvent.CANCEL: Transition(
        _IN_PROGRESS, None, "Only a deal that is being processed can be cancelled."
    ),
    DealEvent.EXPIRE: Transition(
        UNCLAIMED_STATUSES, DealStatus.EXPIRED, "Only unclaimed listings expire."
    ),
    DealEvent.WITHDRAW: Transition(
        UNCLAIMED_STATUSES,
        DealStatus.CANCELLED,
        "Only unclaimed listings can be withdrawn.",
    ),
}


def can_apply(deal: Deal, event: DealEvent) -> bool:
    """Return true when the event is allowed from the deal's status."""
    return deal.status in TRANSITIONS[event].sources


def next_status(deal: Deal, event: DealEvent) -> DealStatus:
    """Return the status after applying the event, or raise InvalidStateError."""
    transition = TRANSITIONS[event]
    if deal.status not in transition.sources:
        raise InvalidStateError(transition.hint)
    if event == DealEvent.CANCEL:
        return restored_status(deal)
    return transition.target or deal.status


def restored_status(deal: Deal) -> DealStatus:
    """Unclaimed status to restore when a claim is released."""
    if deal.pre_claim_status in UNCLAIMED_STATUSES:
        return deal.pre_claim_status
    return DealStatus.OUTSOURCE
