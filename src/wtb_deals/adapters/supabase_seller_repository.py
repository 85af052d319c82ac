"""Supabase-backed seller identity repository."""

from dataclasses import dataclass

from supabase import Client

from wtb_deals.adapters.supabase_deal_repository import execute
from wtb_deals.domain.deals import Seller
from wtb_deals.services.deals import SellerRepository

_COLUMNS = "id, seller_code, discord_id, discord_username"


def _row_to_seller(row: dict[str, object]) -> Seller:
    return Seller(
        id=str(row["id"]),
        seller_code=str(row.get("seller_code") or ""),
        discord_id=str(row["discord_id"]) if row.get("discord_id") else None,
        discord_username=(
            str(row["discord_username"]) if row.get("discord_username") else None
        ),
    )


@dataclass
class SupabaseSellerRepository(SellerRepository):
    """Supabase implementation for the sellers table."""

    client: Client
    table_name: str = "sellers"

    def get(self, seller_id: str) -> Seller | None:
        """Return a seller by record id."""
        request = (
            self.client.table(self.table_name)
            .select(_COLUMNS)
            .eq("id", seller_id)
            .limit(1)
        )
        response = execute(request, self.table_name)
        if not response.data:
            return None
        return _row_to_seller(response.data[0])

    def get_by_code(self, seller_code: str) -> Seller | None:
        """Return a seller by its public code, e.g. SE-00001."""
        request = (
            self.client.table(self.table_name)
            .select(_COLUMNS)
            .eq("seller_code", seller_code)
            .limit(1)
        )
        response = execute(request, self.table_name)
        if not response.data:
            return None
        return _row_to_seller(response.data[0])
