"""Outbound message, component and modal rendering."""

from dataclasses import dataclass, field
from decimal import Decimal

from wtb_deals.domain.actions import DealAction, action_id
from wtb_deals.domain.deals import Deal, Seller, VatType
from wtb_deals.services.pricing import format_money

BUTTON_PRIMARY = 1
BUTTON_SECONDARY = 2
BUTTON_SUCCESS = 3
BUTTON_DANGER = 4

_ACTION_ROW = 1
_BUTTON = 2
_TEXT_INPUT = 4
_TEXT_INPUT_SHORT = 1
_TEXT_INPUT_PARAGRAPH = 2

DEAL_COLOR = 0xFFED00
EXPIRED_TITLE_PREFIX = "⏱️ EXPIRED • "

SELLER_ID_FIELD = "seller_id"
VAT_TYPE_FIELD = "vat_type"
TRACKING_FIELD = "tracking"
SELECTION_FIELD = "selection"


@dataclass(frozen=True)
class OutboundMessage:
    """A message to post or an edit to apply on the platform."""

    content: str | None = None
    embeds: list[dict[str, object]] | None = None
    components: list[dict[str, object]] | None = None

    def to_payload(self) -> dict[str, object]:
        """Return the REST payload, omitting unset parts."""
        payload: dict[str, object] = {"allowed_mentions": {"parse": ["users"]}}
        if self.content is not None:
            payload["content"] = self.content
        if self.embeds is not None:
            payload["embeds"] = self.embeds
        if self.components is not None:
            payload["components"] = self.components
        return payload


@dataclass(frozen=True)
class DealReply:
    """The single reply rendered for an interactive event."""

    content: str | None = None
    components: list[dict[str, object]] = field(default_factory=list)
    modal: dict[str, object] | None = None
    ephemeral: bool = True

    def to_dict(self) -> dict[str, object]:
        """Serialize for the relay."""
        return {
            "content": self.content,
            "components": self.components,
            "modal": self.modal,
            "ephemeral": self.ephemeral,
        }


@dataclass(frozen=True)
class PaymentInstructions:
    """How buyers pay before shipping."""

    iban: str | None = None
    paypal_email: str | None = None
    beneficiary: str | None = None


def button(
    label: str, custom_id: str, style: int = BUTTON_PRIMARY, disabled: bool = False
) -> dict[str, object]:
    """Build a button component."""
    return {
        "type": _BUTTON,
        "style": style,
        "label": label,
        "custom_id": custom_id,
        "disabled": disabled,
    }


def action_row(*buttons: dict[str, object]) -> dict[str, object]:
    """Wrap components into an action row."""
    return {"type": _ACTION_ROW, "components": list(buttons)}


def _text_input(  # noqa: PLR0913
    custom_id: str,
    label: str,
    placeholder: str | None = None,
    style: int = _TEXT_INPUT_SHORT,
    required: bool = True,
    max_length: int | None = None,
) -> dict[str, object]:
    component: dict[str, object] = {
        "type": _TEXT_INPUT,
        "custom_id": custom_id,
        "label": label,
        "style": style,
        "required": required,
    }
    if placeholder:
        component["placeholder"] = placeholder
    if max_length:
        component["max_length"] = max_length
    return action_row(component)


def mention(user_id: str | None) -> str:
    """Render a user mention."""
    return f"<@{user_id}>" if user_id else "-"


def channel_link(channel_id: str) -> str:
    """Render a channel mention."""
    return f"<#{channel_id}>"


def disable_components(
    components: list[dict[str, object]] | None,
) -> list[dict[str, object]]:
    """Return a copy of message components with every button disabled."""
    rows = []
    for row in components or []:
        children = [
            {**child, "disabled": True}
            for child in row.get("components", [])  # type: ignore[union-attr]
        ]
        rows.append({**row, "components": children})
    return rows


def claim_modal(deal_id: str) -> dict[str, object]:
    """Modal asking the claimant for their seller id and VAT type."""
    return {
        "custom_id": action_id(DealAction.CLAIM_MODAL, deal_id),
        "title": "Claim Member WTB Deal",
        "components": [
            _text_input(SELLER_ID_FIELD, "Seller ID (e.g. 00001)"),
            _text_input(
                VAT_TYPE_FIELD,
                "VAT Type (Margin / VAT21 / VAT0)",
                placeholder='Exactly: "Margin", "VAT21" or "VAT0"',
            ),
        ],
    }


def label_modal(deal_id: str, tracking_prefix: str) -> dict[str, object]:
    """Modal asking the buyer for the shipment tracking code."""
    return {
        "custom_id": action_id(DealAction.LABEL_MODAL, deal_id),
        "title": "Upload Shipping Label",
        "components": [
            _text_input(
                TRACKING_FIELD,
                f'Tracking code (must start with "{tracking_prefix}")',
                placeholder=f"{tracking_prefix}...",
            )
        ],
    }


def withdraw_modal(actor_id: str) -> dict[str, object]:
    """Modal asking a requester which listings to withdraw."""
    return {
        "custom_id": action_id(DealAction.WITHDRAW_LISTINGS, actor_id),
        "title": "Withdraw WTBs",
        "components": [
            _text_input(
                SELECTION_FIELD,
                "Numbers to withdraw (e.g. 1, 3, 4)",
                style=_TEXT_INPUT_PARAGRAPH,
                max_length=200,
            )
        ],
    }


def listing_claim_components(deal_id: str, enabled: bool) -> list[dict[str, object]]:
    """Claim button row on the public listing message."""
    return [
        action_row(
            button(
                "Claim Deal",
                action_id(DealAction.CLAIM, deal_id),
                style=BUTTON_SUCCESS if enabled else BUTTON_SECONDARY,
                disabled=not enabled,
            )
        )
    ]


def deal_channel_message(
    deal: Deal,
    claimant_id: str,
    seller_code: str,
    vat_type: VatType,
    locked_payout: Decimal,
) -> OutboundMessage:
    """First message in a private deal channel."""
    embed: dict[str, object] = {
        "title": "💸 Member WTB Deal Claimed",
        "color": DEAL_COLOR,
        "description": (
            f"**SKU:** {deal.sku or '-'}\n"
            f"**Size:** {deal.size or '-'}\n"
            f"**Brand:** {deal.brand or '-'}\n"
            f"**Locked Payout:** {format_money(locked_payout)}\n"
            f"**VAT Type:** {vat_type.value}\n"
            f"**Seller (claimed with):** {seller_code}"
        ),
    }
    if deal.image_url:
        embed["image"] = {"url": deal.image_url}
    return OutboundMessage(
        content=mention(claimant_id),
        embeds=[embed],
        components=[
            action_row(
                button("Process Claim", action_id(DealAction.START_CLAIM, deal.id)),
                button(
                    "Cancel Deal",
                    action_id(DealAction.CANCEL_DEAL, deal.id),
                    style=BUTTON_DANGER,
                ),
            )
        ],
    )


def identity_prompt(deal_id: str, seller: Seller) -> DealReply:
    """Ask the claimant to confirm the seller record they claimed with."""
    return DealReply(
        content=(
            "🔍 We found this Discord username linked to Seller ID "
            f"**{seller.seller_code or 'Unknown ID'}**:\n"
            f"**{seller.discord_username or 'Unknown'}**\n\nIs this you?"
        ),
        components=[
            action_row(
                button(
                    "✅ Yes, that is me",
                    action_id(DealAction.CONFIRM_SELLER, deal_id),
                    style=BUTTON_SUCCESS,
                ),
                button(
                    "❌ No, not me",
                    action_id(DealAction.REJECT_SELLER, deal_id),
                    style=BUTTON_DANGER,
                ),
            )
        ],
        ephemeral=False,
    )


def evidence_request(required: int) -> OutboundMessage:
    """Edit applied to the identity prompt once the seller is confirmed."""
    return OutboundMessage(
        content=(
            "✅ Seller ID confirmed.\n"
            f"Please upload **{required} different** pictures of the pair to prove "
            "it is in-hand and complete."
        ),
        components=[],
    )


def identity_rejected() -> OutboundMessage:
    """Edit applied to the identity prompt when the seller rejects it."""
    return OutboundMessage(
        content=(
            "⚠️ Then cancel this deal and claim again with the correct Seller ID."
        ),
        components=[],
    )


def evidence_progress(count: int, required: int) -> OutboundMessage:
    """Progress notice for evidence uploads."""
    return OutboundMessage(
        content=f"📸 Uploaded {count}/{required} required pictures."
    )


def ready_for_approval(deal_id: str, required: int) -> OutboundMessage:
    """One-time notice that unlocks the approver button."""
    return OutboundMessage(
        content=(
            f"✅ All {required} pictures received. Admin can now confirm the deal."
        ),
        components=approve_components(deal_id, enabled=True),
    )


def approve_components(deal_id: str, enabled: bool) -> list[dict[str, object]]:
    """Confirm Deal button row."""
    return [
        action_row(
            button(
                "Confirm Deal",
                action_id(DealAction.CONFIRM_DEAL, deal_id),
                style=BUTTON_SUCCESS,
                disabled=not enabled,
            )
        )
    ]


def deal_confirmed_notice(buyer_notified: bool) -> OutboundMessage:
    """Channel notice after approval."""
    if buyer_notified:
        detail = "Buyer has been notified for payment + label upload."
    else:
        detail = "Buyer could not be notified automatically (DM failed)."
    return OutboundMessage(
        content=(
            f"✅ **Deal confirmed.** {detail}\n"
            "Waiting for buyer payment proof, tracking and label in DM."
        )
    )


def buyer_payment_request(
    deal: Deal, amount: Decimal, payment: PaymentInstructions
) -> OutboundMessage:
    """DM asking the buyer to pay and upload proof."""
    lines = [
        "✅ Your WTB has been **matched** and we are ready to ship.",
        f"**Item:** {deal.display_name or '-'} • Size **{deal.size or '-'}**",
        "",
        f"**Amount to pay (before shipping):** {format_money(amount)}",
        "",
        "**Payment method:**",
    ]
    beneficiary = f" ({payment.beneficiary})" if payment.beneficiary else ""
    if payment.iban:
        lines.append(f"• **IBAN:** {payment.iban}{beneficiary}")
    if payment.paypal_email:
        lines.append(f"• **PayPal:** {payment.paypal_email}")
    lines.extend(
        [
            "",
            "Once paid, click **Upload Proof** and send the proof of payment here.",
            "Then click **Upload Label** to submit tracking + label file.",
        ]
    )
    return OutboundMessage(
        content="\n".join(lines),
        components=[
            action_row(
                button(
                    "Upload Proof",
                    action_id(DealAction.UPLOAD_PROOF, deal.id),
                    style=BUTTON_PRIMARY,
                )
            )
        ],
    )


def label_unlocked(deal_id: str) -> OutboundMessage:
    """DM unlocking the shipping label step."""
    return OutboundMessage(
        content=(
            "✅ Payment proof received.\n"
            "Click **Upload Label** to submit the tracking code, then send the "
            "label file (PDF/image) here."
        ),
        components=[
            action_row(
                button(
                    "Upload Label",
                    action_id(DealAction.UPLOAD_LABEL, deal_id),
                    style=BUTTON_DANGER,
                )
            )
        ],
    )


def proof_received_notice(buyer_id: str, proof_url: str) -> OutboundMessage:
    """Deal channel notice about the buyer's payment proof."""
    return OutboundMessage(
        content=(
            f"💶 **Payment proof uploaded by buyer** {mention(buyer_id)}\n{proof_url}"
        )
    )


def label_received_notice(
    buyer_id: str, tracking_code: str, label_url: str
) -> OutboundMessage:
    """Deal channel notice about the shipping label."""
    return OutboundMessage(
        content=(
            "📦 **Shipping label uploaded by buyer**\n"
            f"• Tracking: **{tracking_code}**\n"
            f"• Buyer: {mention(buyer_id)}\n"
            f"{label_url}"
        )
    )


def expired_listing(message: dict[str, object]) -> OutboundMessage:
    """Edit that marks a listing message as expired."""
    embeds = []
    for embed in message.get("embeds") or []:  # type: ignore[union-attr]
        updated = dict(embed)
        title = str(updated.get("title") or "")
        if title and "EXPIRED" not in title:
            updated["title"] = f"{EXPIRED_TITLE_PREFIX}{title}"
        embeds.append(updated)
    return OutboundMessage(
        embeds=embeds or None,
        components=disable_components(
            message.get("components")  # type: ignore[arg-type]
        ),
    )


def format_listing_panel(deals: list[Deal]) -> str:
    """Numbered list of a requester's active listings."""
    if not deals:
        return "✅ You have no active WTBs right now."
    lines = ["**Your active WTBs**"]
    for index, deal in enumerate(deals, start=1):
        lines.append(f"**{index}.** `{deal.sku or '—'}` — **{deal.size or '—'}**")
    return "\n".join(lines)
