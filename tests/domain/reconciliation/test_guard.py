from __future__ import annotations

from raidsync.domain.model import ContentType
from raidsync.domain.reconciliation import EmptyFeedGuard
from tests.helpers.content import make_codes, make_snapshot


def test_empty_feed_guard_flags_empty_feed_over_populated_store() -> None:
    guard = EmptyFeedGuard()
    old = make_snapshot(ContentType.CODE, make_codes(15))
    empty = make_snapshot(ContentType.CODE, [])

    assert guard.is_suspect(ContentType.CODE, old, empty)
    assert not guard.is_suspect(ContentType.CODE, empty, empty)
    assert not guard.is_suspect(ContentType.CODE, old, old)


def test_empty_feed_guard_can_allow_empty_content_types() -> None:
    guard = EmptyFeedGuard(never_empty=frozenset({ContentType.CHARACTER}))
    old = make_snapshot(ContentType.CODE, make_codes(3))
    empty = make_snapshot(ContentType.CODE, [])

    assert not guard.is_suspect(ContentType.CODE, old, empty)
