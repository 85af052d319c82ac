"""Tests for configuration helpers."""

from wtb_deals.config import Settings, parse_id_list


def test_parse_id_list() -> None:
    assert parse_id_list(None) == []
    assert parse_id_list("") == []
    assert parse_id_list(" 123, 456 ,abc,123,,789") == ["123", "456", "789"]


def test_settings_defaults(settings: Settings) -> None:
    assert settings.evidence_required == 6
    assert settings.upload_session_ttl_minutes == 15
    assert settings.tracking_prefix == "1Z"
    assert settings.expiry_hours == 24
    assert settings.relay_token is None
