from __future__ import annotations

from datetime import UTC, datetime

import pytest

import raidsync.ui.cli as cli_module
from raidsync.app import ContentOverview
from raidsync.domain.model import ContentType
from raidsync.domain.reconciliation import CycleOutcome, CycleResult


def _result(content_type: ContentType, outcome: CycleOutcome, **kwargs: object) -> CycleResult:
    return CycleResult(content_type=content_type, outcome=outcome, **kwargs)  # type: ignore[arg-type]


@pytest.fixture(autouse=True)
def quiet_logging(monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.setattr(cli_module, "configure_logging", lambda **_: None)


def test_reconcile_passes_selected_types(
    monkeypatch: pytest.MonkeyPatch,
    capsys: pytest.CaptureFixture[str],
) -> None:
    captured: dict[str, object] = {}

    def fake_reconcile(content_types: list[ContentType] | None) -> dict[ContentType, CycleResult]:
        captured["types"] = content_types
        return {ContentType.CODE: _result(ContentType.CODE, CycleOutcome.APPLIED, version=4)}

    monkeypatch.setattr(cli_module, "reconcile_content", fake_reconcile)

    cli_module.main(["reconcile", "--type", "code", "--type", "tier-entry"])

    assert captured["types"] == [ContentType.CODE, ContentType.TIER_ENTRY]
    assert "code: applied (version 4, 0 changes)" in capsys.readouterr().out


def test_reconcile_defaults_to_all_types(monkeypatch: pytest.MonkeyPatch) -> None:
    captured: dict[str, object] = {}

    def fake_reconcile(content_types: list[ContentType] | None) -> dict[ContentType, CycleResult]:
        captured["types"] = content_types
        return {}

    monkeypatch.setattr(cli_module, "reconcile_content", fake_reconcile)

    cli_module.main(["reconcile"])

    assert captured["types"] is None


def test_failed_cycle_exits_non_zero(
    monkeypatch: pytest.MonkeyPatch,
    capsys: pytest.CaptureFixture[str],
) -> None:
    def fake_resync(_: list[ContentType] | None) -> dict[ContentType, CycleResult]:
        return {
            ContentType.CHARACTER: _result(
                ContentType.CHARACTER,
                CycleOutcome.FETCH_FAILED,
                error="Fetching character exceeded 30.0s",
            )
        }

    monkeypatch.setattr(cli_module, "resync_content", fake_resync)

    with pytest.raises(SystemExit) as excinfo:
        cli_module.main(["resync"])

    assert excinfo.value.code == 1
    assert "character: fetch_failed - Fetching character exceeded 30.0s" in capsys.readouterr().out


def test_unknown_content_type_is_a_usage_error() -> None:
    with pytest.raises(SystemExit) as excinfo:
        cli_module.main(["reconcile", "--type", "weapons"])

    assert excinfo.value.code == 2


def test_watch_rejects_non_positive_max_cycles(monkeypatch: pytest.MonkeyPatch) -> None:
    def fail_watch(**_: object) -> None:
        pytest.fail("watch should not start")

    monkeypatch.setattr(cli_module, "watch_content", fail_watch)

    with pytest.raises(SystemExit) as excinfo:
        cli_module.main(["watch", "--max-cycles", "0"])

    assert excinfo.value.code == 2


def test_watch_forwards_max_cycles(monkeypatch: pytest.MonkeyPatch) -> None:
    captured: dict[str, object] = {}

    def fake_watch(*, max_cycles: int | None) -> None:
        captured["max_cycles"] = max_cycles

    monkeypatch.setattr(cli_module, "watch_content", fake_watch)

    cli_module.main(["watch", "--max-cycles", "2"])

    assert captured["max_cycles"] == 2


def test_unexpected_errors_exit_with_one(monkeypatch: pytest.MonkeyPatch) -> None:
    def broken(_: list[ContentType] | None) -> dict[ContentType, CycleResult]:
        raise RuntimeError("database locked")

    monkeypatch.setattr(cli_module, "reconcile_content", broken)

    with pytest.raises(SystemExit) as excinfo:
        cli_module.main(["reconcile"])

    assert excinfo.value.code == 1


def test_status_prints_overview(
    monkeypatch: pytest.MonkeyPatch,
    capsys: pytest.CaptureFixture[str],
) -> None:
    applied_at = datetime(2025, 3, 1, 9, tzinfo=UTC)
    monkeypatch.setattr(
        cli_module,
        "store_overview",
        lambda: [
            ContentOverview(ContentType.CODE, 3, 12, applied_at),
            ContentOverview(ContentType.TIER_ENTRY, 0, 0, None),
        ],
    )

    cli_module.main(["status"])

    out = capsys.readouterr().out
    assert "code: version 3, 12 entities, last applied 2025-03-01T09:00:00+00:00" in out
    assert "tier_entry: version 0, 0 entities, last applied never" in out
