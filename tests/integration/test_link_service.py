"""Integration tests for link creation, status changes and counters."""

import json
from datetime import datetime
from uuid import uuid4

import pytest

from clicktrail.core.security import verify_password
from clicktrail.exceptions import NotFoundError, ValidationError
from clicktrail.models import LinkStatus, ShortLink
from clicktrail.services import link as link_service
from clicktrail.services.link import (
    SHORT_CODE_CHARS,
    SHORT_CODE_LENGTH,
    LinkStore,
    create_link,
    generate_short_code,
    get_owner_links,
)


def test_generate_short_code():
    code = generate_short_code()

    assert len(code) == SHORT_CODE_LENGTH
    assert set(code) <= set(SHORT_CODE_CHARS)


async def test_create_link_generates_code(session_factory):
    async with session_factory() as session:
        link = await create_link(session, uuid4(), "https://example.com")
        await session.commit()

    assert len(link.short_code) == SHORT_CODE_LENGTH
    assert link.status == LinkStatus.ACTIVE
    assert link.click_count == 0
    assert link.password_hash is None


async def test_create_link_hashes_password(make_link):
    link = await make_link("secret1", password="hunter2")

    assert link.password_hash != "hunter2"
    assert verify_password("hunter2", link.password_hash)
    assert not verify_password("wrong", link.password_hash)


@pytest.mark.parametrize("short_code", ["abc12", "x" * 51])
async def test_create_link_rejects_bad_length(make_link, short_code):
    with pytest.raises(ValidationError):
        await make_link(short_code)


async def test_create_link_rejects_taken_code(make_link):
    await make_link("taken1")

    with pytest.raises(ValidationError, match="already taken"):
        await make_link("taken1")


async def test_find_link(link, link_store):
    record = await link_store.find_link("abc123")

    assert record.id == link.id
    assert record.original_url == "https://example.com/landing"
    assert record.status == LinkStatus.ACTIVE
    assert await link_store.find_link("nope42") is None


async def test_disable_with_reason(link, link_store):
    record = await link_store.change_status("abc123", LinkStatus.DISABLED, reason="Phishing report")

    assert record.status == LinkStatus.DISABLED
    assert record.disabled_reason == "Phishing report"


async def test_reactivate_clears_reason(link, link_store):
    await link_store.change_status("abc123", LinkStatus.DISABLED, reason="Spam")
    record = await link_store.change_status("abc123", LinkStatus.ACTIVE)

    assert record.status == LinkStatus.ACTIVE
    assert record.disabled_reason is None


@pytest.mark.parametrize(
    "path",
    [
        [LinkStatus.EXPIRED, LinkStatus.ACTIVE],
        [LinkStatus.DELETED, LinkStatus.ACTIVE],
        [LinkStatus.DELETED, LinkStatus.DISABLED],
        [LinkStatus.ACTIVE],
    ],
)
async def test_rejected_transitions(link, link_store, path):
    *allowed, rejected = path
    for status in allowed:
        await link_store.change_status("abc123", status)

    with pytest.raises(ValidationError):
        await link_store.change_status("abc123", rejected)


async def test_change_status_unknown_code(link_store):
    with pytest.raises(NotFoundError):
        await link_store.change_status("nope42", LinkStatus.DISABLED)


async def test_owner_links_skip_deleted(make_link, link_store, session_factory):
    first = await make_link("first1")
    await make_link("second")
    await link_store.change_status("first1", LinkStatus.DELETED)

    async with session_factory() as session:
        links = await get_owner_links(session, first.owner_id)
        all_links = await get_owner_links(session, first.owner_id, include_deleted=True)

    assert [link.short_code for link in links] == ["second"]
    assert len(all_links) == 2


async def test_counters(link, link_store, session_factory):
    await link_store.increment_click_count("abc123")
    await link_store.increment_click_count("abc123")
    await link_store.mark_last_clicked("abc123", datetime(2024, 1, 15, 12, 0))
    await link_store.mark_last_clicked("abc123", datetime(2024, 1, 15, 11, 0))

    async with session_factory() as session:
        stored = await session.get(ShortLink, link.id)

    assert stored.click_count == 2
    assert stored.last_clicked_at == datetime(2024, 1, 15, 12, 0)


class FakeLinkCache:
    def __init__(self):
        self.entries: dict[str, str] = {}
        self.invalidated: list[str] = []

    async def get(self, short_code):
        return self.entries.get(short_code)

    async def set(self, short_code, payload, ttl):
        self.entries[short_code] = payload

    async def invalidate(self, short_code):
        self.invalidated.append(short_code)
        self.entries.pop(short_code, None)


@pytest.fixture
def link_cache(monkeypatch):
    cache = FakeLinkCache()
    monkeypatch.setattr(link_service, "get_cached_link", cache.get)
    monkeypatch.setattr(link_service, "cache_link", cache.set)
    monkeypatch.setattr(link_service, "invalidate_link_cache", cache.invalidate)
    return cache


async def test_cached_lookup(link, session_factory, link_cache):
    store = LinkStore(session_factory, cache_ttl=60)

    first = await store.find_link("abc123")
    cached = json.loads(link_cache.entries["abc123"])
    assert cached["short_code"] == "abc123"

    cached["original_url"] = "https://cached.example.com"
    link_cache.entries["abc123"] = json.dumps(cached)
    second = await store.find_link("abc123")

    assert first.original_url == "https://example.com/landing"
    assert second.original_url == "https://cached.example.com"


async def test_status_change_invalidates_cache(link, session_factory, link_cache):
    store = LinkStore(session_factory, cache_ttl=60)
    await store.find_link("abc123")

    await store.change_status("abc123", LinkStatus.DISABLED, reason="Spam")
    record = await store.find_link("abc123")

    assert link_cache.invalidated == ["abc123"]
    assert record.status == LinkStatus.DISABLED


async def test_cache_disabled(link, link_store, link_cache):
    await link_store.find_link("abc123")

    assert link_store.cache_enabled is False
    assert link_cache.entries == {}
