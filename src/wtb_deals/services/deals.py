"""Deal lifecycle service.

Every operation loads the deal record fresh and re-validates the acting user
against it. Sessions only carry hints between steps; the record decides.
Mutations that race with other actors are compare-and-set updates guarded
by the column values they were computed from.
"""

import logging
from collections.abc import Callable, Iterable
from dataclasses import dataclass, field, replace
from datetime import datetime
from typing import Protocol

import httpx

from wtb_deals.adapters.automation_webhook import AutomationWebhook
from wtb_deals.domain.deals import Attachment, Deal, DealQuery, DealStatus, Seller
from wtb_deals.domain.errors import (
    ExternalIOError,
    InvalidStateError,
    NotFoundError,
    SessionExpiredError,
    UnauthorizedError,
)
from wtb_deals.domain.sessions import ClaimContext, UploadKind
from wtb_deals.services.authorization import (
    ApproverPolicy,
    can_approve,
    can_cancel,
    is_claimant,
    is_confirmed_claimant,
    is_requester,
)
from wtb_deals.services.cache import utcnow
from wtb_deals.services.messages import (
    DealReply,
    OutboundMessage,
    PaymentInstructions,
    approve_components,
    buyer_payment_request,
    channel_link,
    claim_modal,
    deal_channel_message,
    deal_confirmed_notice,
    evidence_progress,
    evidence_request,
    identity_prompt,
    identity_rejected,
    label_modal,
    label_received_notice,
    label_unlocked,
    proof_received_notice,
    ready_for_approval,
)
from wtb_deals.services.notifications import NotificationDispatcher, deal_channel_name
from wtb_deals.services.pricing import (
    compute_buyer_charge,
    lock_payout,
    normalize_seller_code,
    normalize_tracking_code,
    parse_vat_type,
)
from wtb_deals.services.sessions import SessionStore
from wtb_deals.services.transitions import DealEvent, next_status

logger = logging.getLogger(__name__)


class DealRepository(Protocol):
    """Persistence interface for deal records."""

    def get(self, deal_id: str) -> Deal | None:
        """Return a deal by id, if present."""

    def find_by_claimed_channel(self, channel_id: str) -> Deal | None:
        """Return the deal linked to a private deal channel."""

    def query(self, query: DealQuery) -> list[Deal]:
        """Return deals matching a filter, oldest first."""

    def update(
        self,
        deal_id: str,
        fields: dict[str, object],
        expect: dict[str, object] | None = None,
    ) -> bool:
        """Apply a partial update if the expected values still hold."""


class SellerRepository(Protocol):
    """Read-only access to verified seller identities."""

    def get(self, seller_id: str) -> Seller | None:
        """Return a seller by record id."""

    def get_by_code(self, seller_code: str) -> Seller | None:
        """Return a seller by public seller code."""


_ALREADY_PROCESSING = "This deal is already being processed by someone else."
_CHANGED_MEANWHILE = "This deal changed in the meantime. Please try again."

_CLAIM_RELEASE_FIELDS: dict[str, object] = {
    "pre_claim_status": None,
    "claimed_channel_id": None,
    "claimed_message_id": None,
    "claimed_seller_record_id": None,
    "claimed_seller_code": None,
    "claimed_seller_discord_id": None,
    "claimed_seller_vat_type": None,
    "locked_payout": None,
    "locked_payout_vat0": None,
    "claimed_seller_confirmed": False,
    "evidence": {},
    "approved_at": None,
    "buyer_payment_requested_at": None,
}


def automation_payload(deal: Deal, event: str) -> dict[str, object]:
    """Build the JSON body sent to the automation webhook."""
    payload: dict[str, object] = {
        "event": event,
        "orderId": deal.order_id,
        "productName": deal.display_name,
        "sku": deal.sku,
        "size": deal.size,
        "brand": deal.brand,
        "payout": str(deal.locked_payout) if deal.locked_payout is not None else None,
        "sellerCode": deal.claimed_seller_code,
        "discordUserId": deal.claimed_seller_discord_id,
        "imageUrl": deal.image_url,
        "vatType": (
            deal.claimed_seller_vat_type.value if deal.claimed_seller_vat_type else None
        ),
        "recordId": deal.id,
        "dealChannelId": deal.claimed_channel_id,
        "sellerRecordId": deal.claimed_seller_record_id,
        "claimMessageUrl": deal.claim_message_url,
    }
    if event == "label_uploaded":
        payload["trackingNumber"] = deal.tracking_number
        payload["shippingLabelUrl"] = deal.shipping_label_url
    return payload


def _uploadable(artifacts: Iterable[Attachment]) -> Attachment | None:
    artifacts = list(artifacts)
    for artifact in artifacts:
        if artifact.is_pdf or artifact.is_image:
            return artifact
    return artifacts[0] if artifacts else None


@dataclass
class DealService:
    """Drives a member WTB deal from claim to shipping label."""

    deals: DealRepository
    sellers: SellerRepository
    sessions: SessionStore
    notifier: NotificationDispatcher
    webhook: AutomationWebhook
    policy: ApproverPolicy = field(default_factory=ApproverPolicy)
    payment: PaymentInstructions = field(default_factory=PaymentInstructions)
    evidence_required: int = 6
    evidence_example_url: str | None = None
    tracking_prefix: str = "1Z"
    clock: Callable[[], datetime] = utcnow

    def _load(self, deal_id: str) -> Deal:
        deal = self.deals.get(deal_id)
        if deal is None:
            raise NotFoundError()
        return deal

    def _require_buyer(self, deal: Deal, actor_id: str) -> None:
        if not is_requester(deal, actor_id):
            raise UnauthorizedError("Only the buyer of this deal can do that.")

    def _require_claimant(self, deal: Deal, actor_id: str) -> None:
        if not is_claimant(deal, actor_id):
            raise UnauthorizedError("Only the claimant of this deal can do that.")

    async def _post_webhook(self, deal: Deal, event: str) -> None:
        try:
            await self.webhook.post(automation_payload(deal, event))
        except httpx.HTTPError:
            logger.exception(
                "Automation webhook failed",
                extra={"deal_id": deal.id, "event": event},
            )

    def _remember_claim(self, deal: Deal, **changes: object) -> ClaimContext | None:
        if not deal.claimed_channel_id or not deal.claimed_seller_discord_id:
            return None
        context = self.sessions.get_claim(deal.claimed_channel_id)
        if context is None or context.deal_id != deal.id:
            context = ClaimContext(
                channel_id=deal.claimed_channel_id,
                deal_id=deal.id,
                claimant_id=deal.claimed_seller_discord_id,
                seller_record_id=deal.claimed_seller_record_id,
                seller_code=deal.claimed_seller_code,
                vat_type=deal.claimed_seller_vat_type,
                locked_payout=deal.locked_payout,
                confirmed=deal.claimed_seller_confirmed,
                evidence_ids=frozenset(deal.evidence),
            )
        context = replace(context, **changes)
        self.sessions.set_claim(context)
        return context

    def claim_form(self, deal_id: str) -> DealReply:
        """Return the claim modal for an open listing."""
        deal = self._load(deal_id)
        if deal.is_claimed:
            raise InvalidStateError(_ALREADY_PROCESSING)
        next_status(deal, DealEvent.CLAIM)
        return DealReply(modal=claim_modal(deal.id))

    def _claim_replay(self, deal: Deal, actor_id: str) -> DealReply | None:
        if deal.claimed_seller_discord_id != actor_id or not deal.claimed_channel_id:
            return None
        return DealReply(
            content=(
                "You already claimed this deal. "
                f"Continue in {channel_link(deal.claimed_channel_id)}."
            )
        )

    async def claim(
        self,
        deal_id: str,
        actor_id: str,
        seller_code_raw: str | None,
        vat_type_raw: str | None,
    ) -> DealReply:
        """Claim an open listing and open its private deal channel."""
        deal = self._load(deal_id)
        if deal.is_claimed:
            replay = self._claim_replay(deal, actor_id)
            if replay is not None:
                return replay
            raise InvalidStateError(_ALREADY_PROCESSING)
        target = next_status(deal, DealEvent.CLAIM)
        vat_type = parse_vat_type(vat_type_raw)
        if vat_type is None:
            raise InvalidStateError(
                'VAT type must be exactly "Margin", "VAT21" or "VAT0".'
            )
        seller_code = normalize_seller_code(seller_code_raw)
        seller = self.sellers.get_by_code(seller_code) if seller_code else None
        if seller is None:
            raise NotFoundError(
                "Seller ID not found. Check the ID from your seller profile."
            )
        locked = lock_payout(deal, vat_type)
        category_id = await self.notifier.pick_deal_category()

        claimed = self.deals.update(
            deal.id,
            {
                "status": target,
                "pre_claim_status": deal.status,
                "claimed_seller_record_id": seller.id,
                "claimed_seller_code": seller.seller_code,
                "claimed_seller_discord_id": actor_id,
                "claimed_seller_vat_type": vat_type,
                "locked_payout": locked.amount,
                "locked_payout_vat0": locked.vat0_amount,
                "claimed_seller_confirmed": False,
                "evidence": {},
                "approved_at": None,
            },
            expect={
                "status": deal.status,
                "claimed_channel_id": None,
                "claimed_seller_discord_id": None,
            },
        )
        if not claimed:
            current = self.deals.get(deal.id)
            replay = self._claim_replay(current, actor_id) if current else None
            if replay is not None:
                return replay
            raise InvalidStateError(_ALREADY_PROCESSING)
        logger.info("Deal claimed", extra={"deal_id": deal.id, "actor_id": actor_id})

        try:
            channel = await self.notifier.create_deal_channel(
                deal_channel_name(deal), actor_id, category_id
            )
        except httpx.HTTPError as exc:
            logger.exception(
                "Failed to create deal channel", extra={"deal_id": deal.id}
            )
            self._release_claim(deal, actor_id)
            raise ExternalIOError(
                "Could not create the deal channel. Please try again."
            ) from exc
        channel_id = str(channel["id"])

        message = await self.notifier.send(
            channel_id,
            deal_channel_message(
                deal, actor_id, seller.seller_code, vat_type, locked.amount
            ),
        )
        message_id = str(message["id"]) if message else None
        linked = self.deals.update(
            deal.id,
            {"claimed_channel_id": channel_id, "claimed_message_id": message_id},
            expect={"claimed_seller_discord_id": actor_id},
        )
        if not linked:
            logger.warning(
                "Claim released before the channel was linked",
                extra={"deal_id": deal.id, "channel_id": channel_id},
            )
        self.sessions.set_claim(
            ClaimContext(
                channel_id=channel_id,
                deal_id=deal.id,
                claimant_id=actor_id,
                seller_record_id=seller.id,
                seller_code=seller.seller_code,
                vat_type=vat_type,
                locked_payout=locked.amount,
            )
        )
        await self.notifier.set_listing_claim_enabled(deal, enabled=False)
        return DealReply(
            content=f"✅ Deal claimed! Continue in {channel_link(channel_id)}."
        )

    def _release_claim(self, deal: Deal, actor_id: str) -> None:
        released = self.deals.update(
            deal.id,
            {**_CLAIM_RELEASE_FIELDS, "status": deal.status},
            expect={"claimed_seller_discord_id": actor_id, "claimed_channel_id": None},
        )
        if not released:
            logger.error("Failed to release claim", extra={"deal_id": deal.id})

    def present_identity(self, deal_id: str, actor_id: str) -> DealReply:
        """Show the claimant the seller identity they claimed with."""
        deal = self._load(deal_id)
        next_status(deal, DealEvent.CONFIRM_IDENTITY)
        self._require_claimant(deal, actor_id)
        seller = (
            self.sellers.get(deal.claimed_seller_record_id)
            if deal.claimed_seller_record_id
            else None
        )
        if seller is None:
            raise NotFoundError("Could not find the seller record for this claim.")
        return identity_prompt(deal.id, seller)

    async def confirm_identity(
        self, deal_id: str, actor_id: str, channel_id: str, message_id: str | None
    ) -> DealReply:
        """Persist the claimant's identity confirmation and ask for pictures."""
        deal = self._load(deal_id)
        next_status(deal, DealEvent.CONFIRM_IDENTITY)
        self._require_claimant(deal, actor_id)
        if not deal.claimed_seller_confirmed:
            confirmed = self.deals.update(
                deal.id,
                {"claimed_seller_confirmed": True},
                expect={
                    "status": DealStatus.CLAIM_PROCESSING,
                    "claimed_seller_discord_id": actor_id,
                },
            )
            if not confirmed:
                raise InvalidStateError(_CHANGED_MEANWHILE)
        self._remember_claim(
            replace(deal, claimed_seller_confirmed=True), confirmed=True
        )
        request = evidence_request(self.evidence_required)
        await self.notifier.edit_or_send(channel_id, message_id, request)
        if self.evidence_example_url:
            await self.notifier.send(
                channel_id,
                OutboundMessage(
                    content="Example of the pictures we need:",
                    embeds=[{"image": {"url": self.evidence_example_url}}],
                ),
            )
        return DealReply(content="Seller ID confirmed.")

    async def reject_identity(
        self, deal_id: str, actor_id: str, channel_id: str, message_id: str | None
    ) -> DealReply:
        """Tell the claimant to re-claim with the right seller id."""
        deal = self._load(deal_id)
        next_status(deal, DealEvent.CONFIRM_IDENTITY)
        self._require_claimant(deal, actor_id)
        await self.notifier.edit_or_send(channel_id, message_id, identity_rejected())
        return DealReply(
            content="No changes were made. Cancel this deal and claim it again."
        )

    async def record_evidence(
        self,
        channel_id: str,
        actor_id: str,
        message_id: str | None,
        artifacts: Iterable[Attachment],
    ) -> DealReply | None:
        """Record pictures posted in a deal channel.

        Returns None for channels that are not linked to an active claim
        and for pictures posted by anyone other than the claimant.
        """
        images = [artifact for artifact in artifacts if artifact.is_image]
        if not images:
            return None
        context = self.sessions.get_claim(channel_id)
        deal = self.deals.get(context.deal_id) if context else None
        if deal is None or deal.claimed_channel_id != channel_id:
            if context is not None:
                self.sessions.delete_claim(channel_id)
            deal = self.deals.find_by_claimed_channel(channel_id)
        if deal is None:
            return None
        if not is_claimant(deal, actor_id):
            return None
        next_status(deal, DealEvent.RECORD_EVIDENCE)
        if not is_confirmed_claimant(deal, actor_id):
            raise InvalidStateError(
                "Please confirm your Seller ID first using Process Claim."
            )
        if deal.approved_at is not None:
            return None

        fresh = {
            image.id: image.url for image in images if image.id not in deal.evidence
        }
        previous = deal.evidence_count
        if fresh:
            evidence = {**deal.evidence, **fresh}
            recorded = self.deals.update(
                deal.id,
                {"evidence": evidence},
                expect={
                    "claimed_channel_id": channel_id,
                    "claimed_seller_discord_id": actor_id,
                    "approved_at": None,
                },
            )
            if not recorded:
                raise InvalidStateError(_CHANGED_MEANWHILE)
            deal = replace(deal, evidence=evidence)
            logger.info(
                "Evidence recorded",
                extra={"deal_id": deal.id, "count": deal.evidence_count},
            )
        count = deal.evidence_count
        context = self._remember_claim(deal, evidence_ids=frozenset(deal.evidence))
        already_notified = context is not None and context.ready_notified
        if previous < self.evidence_required <= count and not already_notified:
            if context is not None:
                self.sessions.set_claim(replace(context, ready_notified=True))
            await self.notifier.send(
                channel_id, ready_for_approval(deal.id, self.evidence_required)
            )
        progress = evidence_progress(
            min(count, self.evidence_required), self.evidence_required
        )
        return DealReply(content=progress.content, ephemeral=False)

    async def approve(  # noqa: PLR0913
        self,
        deal_id: str,
        actor_id: str,
        actor_roles: Iterable[str],
        channel_id: str,
        message_id: str | None,
    ) -> DealReply:
        """Approve a deal and request payment from the buyer."""
        deal = self._load(deal_id)
        if not can_approve(self.policy, actor_id, actor_roles):
            raise UnauthorizedError("Only staff can confirm deals.")
        next_status(deal, DealEvent.APPROVE)
        if deal.approved_at is not None:
            raise InvalidStateError("This deal was already confirmed.")
        if deal.evidence_count < self.evidence_required:
            raise InvalidStateError(
                "Waiting for pictures: "
                f"{deal.evidence_count}/{self.evidence_required} received."
            )
        approved_at = self.clock()
        approved = self.deals.update(
            deal.id,
            {"approved_at": approved_at},
            expect={"approved_at": None, "status": DealStatus.CLAIM_PROCESSING},
        )
        if not approved:
            raise InvalidStateError("This deal was already confirmed.")
        deal = replace(deal, approved_at=approved_at)
        logger.info("Deal approved", extra={"deal_id": deal.id, "actor_id": actor_id})

        await self._post_webhook(deal, "deal_approved")
        buyer_notified = await self._request_payment(deal, approved_at)
        if message_id:
            await self.notifier.edit(
                channel_id,
                message_id,
                OutboundMessage(components=approve_components(deal.id, enabled=False)),
            )
        await self.notifier.send(
            deal.claimed_channel_id or channel_id, deal_confirmed_notice(buyer_notified)
        )
        return DealReply(content="✅ Deal confirmed.")

    async def _request_payment(self, deal: Deal, requested_at: datetime) -> bool:
        buyer_id = deal.buyer_discord_id
        if not buyer_id:
            logger.warning("Deal has no buyer", extra={"deal_id": deal.id})
            return False
        amount = compute_buyer_charge(
            deal.claimed_seller_vat_type,
            deal.buyer_country,
            deal.buyer_vat_id,
            deal.locked_buyer_price,
            deal.locked_buyer_price_vat0,
        )
        if amount is None:
            amount = deal.locked_buyer_price_vat0
        if amount is None:
            logger.warning("Deal has no buyer price", extra={"deal_id": deal.id})
            return False
        sent = await self.notifier.send_dm(
            buyer_id, buyer_payment_request(deal, amount, self.payment)
        )
        if sent is None:
            return False
        self.sessions.open_upload(
            buyer_id, deal.id, UploadKind.PAYMENT_PROOF, started_at=requested_at
        )
        try:
            self.deals.update(deal.id, {"buyer_payment_requested_at": requested_at})
        except ExternalIOError:
            logger.exception(
                "Failed to record payment request", extra={"deal_id": deal.id}
            )
        return True

    def start_proof_upload(self, deal_id: str, actor_id: str) -> DealReply:
        """Open or refresh the buyer's payment proof window."""
        deal = self._load(deal_id)
        self._require_buyer(deal, actor_id)
        if deal.payment_proof_url:
            return DealReply(
                content="Payment proof already received. Click Upload Label next."
            )
        next_status(deal, DealEvent.UPLOAD_PROOF)
        if deal.approved_at is None:
            raise InvalidStateError("This deal is not confirmed yet.")
        session = self.sessions.open_upload(actor_id, deal.id, UploadKind.PAYMENT_PROOF)
        minutes = int((session.expires_at - session.created_at).total_seconds() // 60)
        return DealReply(
            content=(
                "📎 Send your proof of payment (PDF or image) in this DM within "
                f"{minutes} minutes."
            )
        )

    async def upload_proof(
        self, deal_id: str, actor_id: str, artifact: Attachment
    ) -> DealReply:
        """Store the buyer's payment proof and unlock the label step."""
        deal = self._load(deal_id)
        self._require_buyer(deal, actor_id)
        if deal.payment_proof_url:
            self.sessions.delete_upload(actor_id, deal.id)
            return DealReply(content="Payment proof already received.")
        next_status(deal, DealEvent.UPLOAD_PROOF)
        session = self.sessions.get_upload(actor_id, deal.id)
        if session is None or session.kind != UploadKind.PAYMENT_PROOF:
            if deal.buyer_payment_requested_at is not None:
                raise SessionExpiredError(
                    "Your proof upload window expired. Click Upload Proof again."
                )
            raise InvalidStateError("Payment has not been requested for this deal.")
        if not (artifact.is_pdf or artifact.is_image):
            raise InvalidStateError("Please upload a PDF or image file.")
        stored = self.deals.update(
            deal.id,
            {"payment_proof_url": artifact.url},
            expect={"payment_proof_url": None, "buyer_discord_id": actor_id},
        )
        if not stored:
            current = self.deals.get(deal.id)
            if current is not None and current.payment_proof_url:
                self.sessions.delete_upload(actor_id, deal.id)
                return DealReply(content="Payment proof already received.")
            raise InvalidStateError(_CHANGED_MEANWHILE)
        self.sessions.delete_upload(actor_id, deal.id)
        logger.info("Payment proof stored", extra={"deal_id": deal.id})
        if deal.claimed_channel_id:
            await self.notifier.send(
                deal.claimed_channel_id, proof_received_notice(actor_id, artifact.url)
            )
        unlocked = label_unlocked(deal.id)
        return DealReply(
            content=unlocked.content,
            components=unlocked.components or [],
            ephemeral=False,
        )

    def label_form(self, deal_id: str, actor_id: str) -> DealReply:
        """Return the tracking code modal."""
        deal = self._load(deal_id)
        self._require_buyer(deal, actor_id)
        self._check_label_ready(deal, actor_id)
        return DealReply(modal=label_modal(deal.id, self.tracking_prefix))

    def _check_label_ready(self, deal: Deal, actor_id: str) -> None:
        next_status(deal, DealEvent.SUBMIT_TRACKING)
        if deal.shipping_label_url:
            raise InvalidStateError("Shipping label already received.")
        if not deal.payment_proof_url:
            raise InvalidStateError("Upload your payment proof first.")
        session = self.sessions.get_upload(actor_id, deal.id)
        if session is not None and session.kind == UploadKind.PAYMENT_PROOF:
            raise InvalidStateError("Finish the payment proof upload first.")

    def submit_tracking_code(
        self, deal_id: str, actor_id: str, code: str | None
    ) -> DealReply:
        """Validate the tracking code and open the label upload window."""
        tracking_code = normalize_tracking_code(code, self.tracking_prefix)
        if tracking_code is None:
            raise InvalidStateError(
                f'Tracking code must start with "{self.tracking_prefix}" and '
                "contain only letters and digits."
            )
        deal = self._load(deal_id)
        self._require_buyer(deal, actor_id)
        self._check_label_ready(deal, actor_id)
        session = self.sessions.open_upload(
            actor_id, deal.id, UploadKind.SHIPPING_LABEL, tracking_code=tracking_code
        )
        minutes = int((session.expires_at - session.created_at).total_seconds() // 60)
        return DealReply(
            content=(
                f"✅ Tracking saved: **{tracking_code}**\n"
                "Now send the shipping label (PDF or image) in this DM within "
                f"{minutes} minutes."
            )
        )

    async def upload_label(
        self, deal_id: str, actor_id: str, artifact: Attachment
    ) -> DealReply:
        """Store the shipping label and complete the deal."""
        deal = self._load(deal_id)
        self._require_buyer(deal, actor_id)
        if deal.shipping_label_url:
            self.sessions.delete_upload(actor_id, deal.id)
            return DealReply(content="Shipping label already received.")
        target = next_status(deal, DealEvent.UPLOAD_LABEL)
        session = self.sessions.get_upload(actor_id, deal.id)
        if (
            session is None
            or session.kind != UploadKind.SHIPPING_LABEL
            or not session.tracking_code
        ):
            raise SessionExpiredError(
                "Your label upload window expired. Click Upload Label and enter "
                "the tracking code again."
            )
        if not (artifact.is_pdf or artifact.is_image):
            raise InvalidStateError("Please upload a PDF or image file.")
        stored = self.deals.update(
            deal.id,
            {
                "tracking_number": session.tracking_code,
                "shipping_label_url": artifact.url,
                "status": target,
            },
            expect={
                "shipping_label_url": None,
                "status": DealStatus.CLAIM_PROCESSING,
            },
        )
        if not stored:
            current = self.deals.get(deal.id)
            if current is not None and current.shipping_label_url:
                self.sessions.delete_upload(actor_id, deal.id)
                return DealReply(content="Shipping label already received.")
            raise InvalidStateError(_CHANGED_MEANWHILE)
        deal = replace(
            deal,
            tracking_number=session.tracking_code,
            shipping_label_url=artifact.url,
            status=target,
        )
        logger.info("Shipping label stored", extra={"deal_id": deal.id})
        self.sessions.delete_upload(actor_id, deal.id)
        if deal.claimed_channel_id:
            self.sessions.delete_claim(deal.claimed_channel_id)
            await self.notifier.send(
                deal.claimed_channel_id,
                label_received_notice(actor_id, session.tracking_code, artifact.url),
            )
        await self._post_webhook(deal, "label_uploaded")
        return DealReply(
            content="✅ Shipping label received. Thanks, this deal is complete!",
            ephemeral=False,
        )

    async def handle_direct_upload(
        self, actor_id: str, channel_id: str, artifacts: Iterable[Attachment]
    ) -> DealReply | None:
        """Route a file sent in a DM to the actor's pending upload step."""
        artifact = _uploadable(artifacts)
        if artifact is None:
            return None
        live = self.sessions.uploads_for_actor(actor_id)
        if live:
            session = live[0]
            logger.info(
                "Routing direct upload",
                extra={"deal_id": session.deal_id, "channel_id": channel_id},
            )
            if session.kind == UploadKind.SHIPPING_LABEL:
                return await self.upload_label(session.deal_id, actor_id, artifact)
            return await self.upload_proof(session.deal_id, actor_id, artifact)

        pending = [
            deal
            for deal in self.deals.query(
                DealQuery(
                    statuses=frozenset({DealStatus.CLAIM_PROCESSING}),
                    buyer_discord_id=actor_id,
                    payment_requested=True,
                )
            )
            if not deal.shipping_label_url
        ]
        if not pending:
            raise NotFoundError(
                "There is no pending upload for you. Use the buttons in your DM "
                "to start one."
            )
        deal = pending[-1]
        if deal.payment_proof_url or deal.buyer_payment_requested_at is None:
            raise SessionExpiredError(
                "Your label upload window expired. Click Upload Label and enter "
                "the tracking code again."
            )
        session = self.sessions.open_upload(
            actor_id,
            deal.id,
            UploadKind.PAYMENT_PROOF,
            started_at=deal.buyer_payment_requested_at,
        )
        if session.expires_at <= self.clock():
            self.sessions.delete_upload(actor_id, deal.id)
            raise SessionExpiredError(
                "Your proof upload window expired. Click Upload Proof again."
            )
        return await self.upload_proof(deal.id, actor_id, artifact)

    async def cancel(
        self,
        deal_id: str,
        actor_id: str,
        actor_roles: Iterable[str],
        channel_id: str | None = None,
    ) -> DealReply:
        """Release an active claim and reopen the listing."""
        deal = self._load(deal_id)
        if not can_cancel(deal, self.policy, actor_id, actor_roles):
            raise UnauthorizedError("Only the claimant or staff can cancel this deal.")
        target = next_status(deal, DealEvent.CANCEL)
        cancelled = self.deals.update(
            deal.id,
            {**_CLAIM_RELEASE_FIELDS, "status": target},
            expect={
                "status": DealStatus.CLAIM_PROCESSING,
                "claimed_channel_id": deal.claimed_channel_id,
            },
        )
        if not cancelled:
            raise InvalidStateError(_CHANGED_MEANWHILE)
        logger.info(
            "Deal cancelled",
            extra={"deal_id": deal.id, "actor_id": actor_id, "status": target.value},
        )
        await self.notifier.set_listing_claim_enabled(deal, enabled=True)
        deal_channel_id = deal.claimed_channel_id or channel_id
        if deal_channel_id:
            self.sessions.delete_claim(deal_channel_id)
        if deal.buyer_discord_id:
            self.sessions.delete_upload(deal.buyer_discord_id, deal.id)
        if deal.claimed_channel_id:
            self.notifier.delete_channel_later(deal.claimed_channel_id)
        return DealReply(
            content=(
                "🛑 Deal cancelled. The listing is open for claims again and this "
                "channel will be deleted shortly."
            ),
            ephemeral=False,
        )
