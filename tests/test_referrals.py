from __future__ import annotations

from sqlalchemy import select

from config import get_settings
from models import Agent
from referrals import (
    format_referral_username,
    generate_agent_invite_link,
    generate_referral_link,
    portal_origin,
    resolve_referrer,
)


def test_referral_link_uses_given_origin() -> None:
    assert generate_referral_link("jane_doe", "https://example.com/") == "https://example.com/signup?ref=jane_doe"


def test_referral_link_encodes_like_uri_component() -> None:
    assert generate_referral_link("a b&c/d", "https://example.com") == "https://example.com/signup?ref=a%20b%26c%2Fd"
    assert generate_referral_link("it's(ok)!", "https://example.com") == "https://example.com/signup?ref=it's(ok)!"


def test_empty_values_give_empty_links() -> None:
    assert generate_referral_link("", "https://example.com") == ""
    assert generate_referral_link(None, "https://example.com") == ""
    assert generate_agent_invite_link("", "https://example.com") == ""


def test_agent_invite_link() -> None:
    assert generate_agent_invite_link("DEMOAGA1B2C3", "https://example.com") == "https://example.com/signup?ref=DEMOAGA1B2C3"


def test_portal_origin_defaults_to_configured_site(monkeypatch) -> None:
    monkeypatch.setenv("SITE_URL", "https://apply.example.org/")
    get_settings.cache_clear()
    try:
        assert portal_origin() == "https://apply.example.org"
        assert generate_referral_link("sam") == "https://apply.example.org/signup?ref=sam"
    finally:
        get_settings.cache_clear()


def test_format_referral_username() -> None:
    assert format_referral_username("  Jane.Doe! ") == "janedoe"
    assert format_referral_username("agent_007") == "agent_007"


def test_resolve_referrer_by_username_or_invite_code(db, users) -> None:
    agent = db.scalar(select(Agent).where(Agent.user_id == users["agent"].id))

    assert resolve_referrer(db, "Demo_Student").id == users["student"].id
    assert resolve_referrer(db, agent.invite_code).id == users["agent"].id
    assert resolve_referrer(db, "nobody_here") is None
    assert resolve_referrer(db, None) is None
