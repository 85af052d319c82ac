"""Payout locking and buyer charge calculation."""

from dataclasses import dataclass
from decimal import ROUND_HALF_UP, Decimal, InvalidOperation

from wtb_deals.domain.deals import Deal, VatType
from wtb_deals.domain.errors import InvalidStateError

_CENT = Decimal("0.01")
_HOME_COUNTRY = "NL"


def to_decimal(value: object) -> Decimal | None:
    """Parse a store value like ``"€ 120,50"`` into a decimal."""
    if value is None or isinstance(value, bool):
        return None
    if isinstance(value, Decimal):
        return value if value.is_finite() else None
    if isinstance(value, int | float):
        value = str(value)
    cleaned = str(value).replace("€", "").replace(",", ".").strip()
    if not cleaned:
        return None
    try:
        parsed = Decimal(cleaned)
    except InvalidOperation:
        return None
    return parsed if parsed.is_finite() else None


def quantize(value: Decimal) -> Decimal:
    """Round to two fraction digits."""
    return value.quantize(_CENT, rounding=ROUND_HALF_UP)


def format_money(value: Decimal | None) -> str:
    """Render an amount for users, e.g. ``€120.50``."""
    if value is None:
        return "-"
    return f"€{quantize(value):.2f}"


def parse_vat_type(raw: str | None) -> VatType | None:
    """Parse the VAT type typed into the claim form."""
    cleaned = (raw or "").strip().lower()
    if cleaned == "margin":
        return VatType.MARGIN
    if cleaned in {"vat21", "21", "21%"}:
        return VatType.VAT21
    if cleaned in {"vat0", "0", "0%"}:
        return VatType.VAT0
    return None


def normalize_seller_code(raw: str | None) -> str | None:
    """Normalize a typed seller id such as ``1`` to ``SE-00001``."""
    digits = "".join(ch for ch in (raw or "") if ch.isdigit())
    if not digits:
        return None
    return f"SE-{digits.zfill(5)}"


@dataclass(frozen=True)
class LockedPayout:
    """Payout fixed at claim time."""

    amount: Decimal
    vat0_amount: Decimal


def lock_payout(deal: Deal, vat_type: VatType) -> LockedPayout:
    """Pick the payout for a pricing mode from the deal's current payout fields."""
    margin = to_decimal(deal.current_payout)
    vat0 = to_decimal(deal.current_payout_vat0)
    if margin is None or vat0 is None:
        raise InvalidStateError(
            "Could not lock the payout because the current payout fields are "
            "missing or invalid. Ask staff to check Current Payout and "
            "Current Payout VAT0."
        )
    amount = vat0 if vat_type == VatType.VAT0 else margin
    return LockedPayout(amount=quantize(amount), vat0_amount=quantize(vat0))


def compute_buyer_charge(
    seller_vat_type: VatType | None,
    buyer_country: str | None,
    buyer_vat_id: str | None,
    buyer_price: Decimal | None,
    buyer_price_vat0: Decimal | None,
) -> Decimal | None:
    """Return what the buyer pays before shipping.

    Margin deals always bill the normal price. Otherwise only a company
    buyer outside the home country gets the VAT0 (reverse charge) price.
    """
    if seller_vat_type == VatType.MARGIN:
        return buyer_price
    country = (buyer_country or "").strip().upper()
    is_company = bool((buyer_vat_id or "").strip())
    if is_company and country and country != _HOME_COUNTRY:
        return buyer_price_vat0 if buyer_price_vat0 is not None else buyer_price
    return buyer_price


def normalize_tracking_code(raw: str | None, prefix: str) -> str | None:
    """Return the upper-cased tracking code if it matches the carrier format."""
    code = (raw or "").strip().upper()
    if not code.startswith(prefix.upper()) or len(code) <= len(prefix):
        return None
    if not code.isalnum():
        return None
    return code
