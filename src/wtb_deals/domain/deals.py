"""Domain models for member WTB deals."""

from dataclasses import dataclass, field
from datetime import datetime
from decimal import Decimal
from enum import Enum


class DealStatus(str, Enum):
    """Fulfillment status values stored on a deal record."""

    PENDING = "Pending"
    OUTSOURCE = "Outsource"
    CLAIM_PROCESSING = "Claim Processing"
    EXPIRED = "Expired"
    CANCELLED = "Cancelled"
    COMPLETED = "Completed"


UNCLAIMED_STATUSES = frozenset({DealStatus.PENDING, DealStatus.OUTSOURCE})


class VatType(str, Enum):
    """Pricing mode chosen by the seller at claim time."""

    MARGIN = "Margin"
    VAT21 = "VAT21"
    VAT0 = "VAT0"


@dataclass(frozen=True)
class Deal:
    """A member WTB record as stored in the deals table."""

    id: str
    sku: str
    size: str
    status: DealStatus
    brand: str = ""
    product_name: str = ""
    image_url: str | None = None
    order_id: str = ""
    created_at: datetime | None = None
    pre_claim_status: DealStatus | None = None
    current_payout: Decimal | None = None
    current_payout_vat0: Decimal | None = None
    claim_message_id: str | None = None
    claim_message_url: str | None = None
    listing_channel_id: str | None = None
    claimed_channel_id: str | None = None
    claimed_message_id: str | None = None
    claimed_seller_record_id: str | None = None
    claimed_seller_code: str | None = None
    claimed_seller_discord_id: str | None = None
    claimed_seller_vat_type: VatType | None = None
    locked_payout: Decimal | None = None
    locked_payout_vat0: Decimal | None = None
    claimed_seller_confirmed: bool = False
    evidence: dict[str, str] = field(default_factory=dict)
    approved_at: datetime | None = None
    buyer_discord_id: str | None = None
    buyer_country: str | None = None
    buyer_vat_id: str | None = None
    locked_buyer_price: Decimal | None = None
    locked_buyer_price_vat0: Decimal | None = None
    buyer_payment_requested_at: datetime | None = None
    payment_proof_url: str | None = None
    tracking_number: str | None = None
    shipping_label_url: str | None = None

    @property
    def is_claimed(self) -> bool:
        """Return true when a claimant currently holds the deal."""
        return self.status == DealStatus.CLAIM_PROCESSING or bool(
            self.claimed_channel_id
        )

    @property
    def evidence_count(self) -> int:
        """Number of distinct evidence artifacts received."""
        return len(self.evidence)

    @property
    def display_name(self) -> str:
        """Product name, or brand and SKU when no name is stored."""
        if self.product_name:
            return self.product_name
        return " ".join(part for part in (self.brand, self.sku) if part)


@dataclass(frozen=True)
class Seller:
    """A verified seller from the sellers table."""

    id: str
    seller_code: str
    discord_id: str | None
    discord_username: str | None


@dataclass(frozen=True)
class Attachment:
    """A file attached to a platform message."""

    id: str
    url: str
    filename: str
    content_type: str | None = None

    @property
    def is_image(self) -> bool:
        """Return true for image attachments."""
        content_type = (self.content_type or "").lower()
        if content_type.startswith("image/"):
            return True
        return self.filename.lower().endswith((".png", ".jpg", ".jpeg", ".webp"))

    @property
    def is_pdf(self) -> bool:
        """Return true for PDF attachments."""
        content_type = (self.content_type or "").lower()
        return "pdf" in content_type or self.filename.lower().endswith(".pdf")


@dataclass(frozen=True)
class DealQuery:
    """Filter for multi-record deal queries.

    All populated criteria are combined with AND; ``statuses`` is an OR over
    its members.
    """

    statuses: frozenset[DealStatus] | None = None
    claimed_channel_blank: bool = False
    created_before: datetime | None = None
    buyer_discord_id: str | None = None
    payment_requested: bool | None = None
    limit: int = 100
