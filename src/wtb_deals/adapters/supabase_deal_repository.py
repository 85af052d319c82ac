"""Supabase-backed deal repository."""

import logging
from dataclasses import dataclass
from datetime import datetime
from decimal import Decimal
from enum import Enum

import httpx
from postgrest.exceptions import APIError
from supabase import Client

from wtb_deals.domain.deals import Deal, DealQuery, DealStatus, VatType
from wtb_deals.domain.errors import ExternalIOError
from wtb_deals.services.deals import DealRepository
from wtb_deals.services.pricing import to_decimal

logger = logging.getLogger(__name__)

_DECIMAL_COLUMNS = (
    "current_payout",
    "current_payout_vat0",
    "locked_payout",
    "locked_payout_vat0",
    "locked_buyer_price",
    "locked_buyer_price_vat0",
)
_DATETIME_COLUMNS = ("created_at", "approved_at", "buyer_payment_requested_at")
_TEXT_COLUMNS = (
    "image_url",
    "claim_message_id",
    "claim_message_url",
    "listing_channel_id",
    "claimed_channel_id",
    "claimed_message_id",
    "claimed_seller_record_id",
    "claimed_seller_code",
    "claimed_seller_discord_id",
    "buyer_discord_id",
    "buyer_country",
    "buyer_vat_id",
    "payment_proof_url",
    "tracking_number",
    "shipping_label_url",
)


def execute(request, table_name: str):  # type: ignore[no-untyped-def]
    """Run a query builder, mapping store failures to ExternalIOError."""
    try:
        return request.execute()
    except (APIError, httpx.HTTPError) as exc:
        logger.exception("Record store request failed", extra={"table": table_name})
        raise ExternalIOError() from exc


def _serialize(value: object) -> object:
    if isinstance(value, Enum):
        return value.value
    if isinstance(value, Decimal):
        return str(value)
    if isinstance(value, datetime):
        return value.isoformat()
    return value


def _parse_datetime(value: object) -> datetime | None:
    if isinstance(value, datetime):
        return value
    if not value:
        return None
    try:
        return datetime.fromisoformat(str(value))
    except ValueError:
        return None


def _parse_enum(enum_type: type[Enum], value: object):  # type: ignore[no-untyped-def]
    if value in (None, ""):
        return None
    try:
        return enum_type(value)
    except ValueError:
        return None


def _text(value: object) -> str | None:
    if value is None:
        return None
    cleaned = str(value).strip()
    return cleaned or None


def row_to_deal(row: dict[str, object]) -> Deal:
    """Map a table row to a Deal."""
    evidence = row.get("evidence")
    values: dict[str, object] = {
        "id": str(row["id"]),
        "sku": str(row.get("sku") or "").strip(),
        "size": str(row.get("size") or "").strip(),
        "status": _parse_enum(DealStatus, row.get("status")) or DealStatus.PENDING,
        "brand": str(row.get("brand") or "").strip(),
        "product_name": str(row.get("product_name") or "").strip(),
        "order_id": str(row.get("order_id") or "").strip(),
        "pre_claim_status": _parse_enum(DealStatus, row.get("pre_claim_status")),
        "claimed_seller_vat_type": _parse_enum(
            VatType, row.get("claimed_seller_vat_type")
        ),
        "claimed_seller_confirmed": bool(row.get("claimed_seller_confirmed")),
        "evidence": dict(evidence) if isinstance(evidence, dict) else {},
    }
    for column in _DECIMAL_COLUMNS:
        values[column] = to_decimal(row.get(column))
    for column in _DATETIME_COLUMNS:
        values[column] = _parse_datetime(row.get(column))
    for column in _TEXT_COLUMNS:
        values[column] = _text(row.get(column))
    return Deal(**values)


@dataclass
class SupabaseDealRepository(DealRepository):
    """Supabase implementation for deal records."""

    client: Client
    table_name: str = "member_wtbs"

    def get(self, deal_id: str) -> Deal | None:
        """Return a deal by id, if present."""
        request = (
            self.client.table(self.table_name)
            .select("*")
            .eq("id", deal_id)
            .limit(1)
        )
        response = execute(request, self.table_name)
        if not response.data:
            return None
        return row_to_deal(response.data[0])

    def find_by_claimed_channel(self, channel_id: str) -> Deal | None:
        """Return the deal whose private channel is channel_id."""
        request = (
            self.client.table(self.table_name)
            .select("*")
            .eq("claimed_channel_id", channel_id)
            .limit(1)
        )
        response = execute(request, self.table_name)
        if not response.data:
            return None
        return row_to_deal(response.data[0])

    def query(self, query: DealQuery) -> list[Deal]:
        """Return deals matching every populated criterion, oldest first."""
        request = self.client.table(self.table_name).select("*")
        if query.statuses:
            request = request.in_(
                "status", sorted(status.value for status in query.statuses)
            )
        if query.claimed_channel_blank:
            request = request.is_("claimed_channel_id", "null")
        if query.created_before is not None:
            request = request.lte("created_at", query.created_before.isoformat())
        if query.buyer_discord_id is not None:
            request = request.eq("buyer_discord_id", query.buyer_discord_id)
        if query.payment_requested is True:
            request = request.not_.is_("buyer_payment_requested_at", "null")
        elif query.payment_requested is False:
            request = request.is_("buyer_payment_requested_at", "null")
        response = execute(
            request.order("created_at").limit(query.limit), self.table_name
        )
        return [row_to_deal(row) for row in response.data or []]

    def update(
        self,
        deal_id: str,
        fields: dict[str, object],
        expect: dict[str, object] | None = None,
    ) -> bool:
        """Apply a partial update, guarded by expected column values.

        Returns false when no row matched, i.e. the record changed since it
        was read.
        """
        payload = {column: _serialize(value) for column, value in fields.items()}
        request = self.client.table(self.table_name).update(payload).eq("id", deal_id)
        for column, value in (expect or {}).items():
            if value is None:
                request = request.is_(column, "null")
            else:
                request = request.eq(column, _serialize(value))
        response = execute(request, self.table_name)
        return bool(response.data)
