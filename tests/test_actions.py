"""Tests for custom id routing tokens."""

import pytest

from wtb_deals.domain.actions import DealAction, action_id, parse_action


def test_deal_scoped_token_roundtrip() -> None:
    token = parse_action(action_id(DealAction.CONFIRM_DEAL, "recAbc123"))

    assert token is not None
    assert token.action == DealAction.CONFIRM_DEAL
    assert token.deal_id == "recAbc123"
    assert token.owner_id is None


def test_actor_scoped_token() -> None:
    token = parse_action("withdraw_form:123456789")

    assert token is not None
    assert token.deal_id is None
    assert token.owner_id == "123456789"


def test_unscoped_token() -> None:
    token = parse_action("my_listings")

    assert token is not None
    assert token.action == DealAction.MY_LISTINGS
    assert parse_action("my_listings:extra") is None


@pytest.mark.parametrize(
    "custom_id",
    [None, "", "unknown:rec1", "claim", "claim:", "claim:rec 1", "claim:rec1;drop"],
)
def test_foreign_or_malformed_ids_are_ignored(custom_id: str | None) -> None:
    assert parse_action(custom_id) is None


def test_action_id_rejects_overlong_ids() -> None:
    with pytest.raises(ValueError):
        action_id(DealAction.CLAIM, "x" * 120)
