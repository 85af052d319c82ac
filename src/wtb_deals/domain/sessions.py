"""Domain models for ephemeral deal sessions."""

from dataclasses import dataclass
from datetime import datetime
from decimal import Decimal
from enum import Enum

from wtb_deals.domain.deals import VatType


class UploadKind(str, Enum):
    """Artifact a counterparty is expected to upload next."""

    PAYMENT_PROOF = "payment_proof"
    SHIPPING_LABEL = "shipping_label"


@dataclass(frozen=True)
class ClaimContext:
    """Cached claim state for one private deal channel."""

    channel_id: str
    deal_id: str
    claimant_id: str
    seller_record_id: str | None
    seller_code: str | None
    vat_type: VatType | None
    locked_payout: Decimal | None
    confirmed: bool = False
    evidence_ids: frozenset[str] = frozenset()
    ready_notified: bool = False


@dataclass(frozen=True)
class UploadSession:
    """Time-boxed upload window for one (actor, deal) pair."""

    actor_id: str
    deal_id: str
    kind: UploadKind
    created_at: datetime
    expires_at: datetime
    tracking_code: str | None = None
