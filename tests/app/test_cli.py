from __future__ import annotations

import pytest

from bylines.domain.backfill import BackfillRequest, BackfillResult
from bylines.domain.model import ContentRecord
from bylines.domain.refresh import RefreshResult
from bylines.ui import cli as cli_module


def _result() -> BackfillResult:
    return BackfillResult(
        total=0, processed=0, affected=0, skipped=0, failed=0, pages=0, pauses=0
    )


@pytest.fixture
def captured_backfill(monkeypatch: pytest.MonkeyPatch) -> dict[str, object]:
    captured: dict[str, object] = {}

    def fake_backfill(request: BackfillRequest | None = None, **kwargs: object) -> BackfillResult:
        captured["request"] = request
        captured.update(kwargs)
        return _result()

    monkeypatch.setattr(cli_module, "run_author_term_backfill", fake_backfill)
    return captured


def test_backfill_defaults(captured_backfill: dict[str, object]) -> None:
    cli_module.main(["backfill"])

    request = captured_backfill["request"]
    assert request == BackfillRequest()
    assert callable(captured_backfill["should_stop"])


def test_backfill_with_flags(captured_backfill: dict[str, object]) -> None:
    cli_module.main(
        [
            "backfill",
            "--post-types",
            "post, page",
            "--post-statuses",
            "publish,private",
            "--records-per-batch",
            "50",
            "--above-post-id",
            "5",
            "--below-post-id",
            "100",
            "--unbatched",
        ]
    )

    assert captured_backfill["request"] == BackfillRequest(
        record_types=("post", "page"),
        record_statuses=("publish", "private"),
        batched=False,
        records_per_batch=50,
        above_id=5,
        below_id=100,
    )


def test_specific_ids_are_parsed(captured_backfill: dict[str, object]) -> None:
    cli_module.main(["backfill", "--specific-post-ids", "3,1, 2"])

    request = captured_backfill["request"]
    assert isinstance(request, BackfillRequest)
    assert request.explicit_ids == (3, 1, 2)


@pytest.mark.parametrize(
    "argv",
    [
        ["backfill", "--above-post-id", "10", "--below-post-id", "5"],
        ["backfill", "--specific-post-ids", "1,x"],
        ["backfill", "--records-per-batch", "0"],
        ["backfill", "--post-types", " , "],
        ["list-missing", "--above-post-id", "3", "--below-post-id", "3"],
        ["clear-skips", "--specific-post-ids", "abc"],
    ],
)
def test_invalid_arguments_exit_with_usage_error(
    argv: list[str],
    captured_backfill: dict[str, object],
) -> None:
    with pytest.raises(SystemExit) as excinfo:
        cli_module.main(argv)

    assert excinfo.value.code == 2
    assert captured_backfill == {}


def test_backfill_failure_exits_with_error(monkeypatch: pytest.MonkeyPatch) -> None:
    def failing_backfill(*_: object, **__: object) -> BackfillResult:
        raise RuntimeError("database is gone")

    monkeypatch.setattr(cli_module, "run_author_term_backfill", failing_backfill)

    with pytest.raises(SystemExit) as excinfo:
        cli_module.main(["backfill"])

    assert excinfo.value.code == 1


def test_list_missing_prints_records(
    monkeypatch: pytest.MonkeyPatch,
    capsys: pytest.CaptureFixture[str],
) -> None:
    def fake_list(request: BackfillRequest | None = None) -> list[ContentRecord]:
        assert request is not None
        return [ContentRecord(id=4, author_ref=9, type="post", status="publish")]

    monkeypatch.setattr(cli_module, "list_records_missing_terms", fake_list)

    cli_module.main(["list-missing"])

    assert capsys.readouterr().out == "4,9,post,publish\n"


def test_clear_skips_passes_ids_or_none(monkeypatch: pytest.MonkeyPatch) -> None:
    calls: list[object] = []

    def fake_clear(record_ids: tuple[int, ...] | None = None) -> list[int]:
        calls.append(record_ids)
        return []

    monkeypatch.setattr(cli_module, "clear_skip_markers", fake_clear)

    cli_module.main(["clear-skips"])
    cli_module.main(["clear-skips", "--specific-post-ids", "8,9"])

    assert calls == [None, (8, 9)]


def test_refresh_terms(monkeypatch: pytest.MonkeyPatch) -> None:
    calls: list[bool] = []

    def fake_refresh() -> RefreshResult:
        calls.append(True)
        return RefreshResult(refreshed=3)

    monkeypatch.setattr(cli_module, "refresh_author_terms", fake_refresh)

    cli_module.main(["refresh-terms"])

    assert calls == [True]


def test_second_interrupt_aborts(monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.setattr(cli_module, "_STOP_REQUESTED", cli_module.threading.Event())

    cli_module.sigint_handler(2, None)
    assert cli_module._STOP_REQUESTED.is_set()

    with pytest.raises(SystemExit) as excinfo:
        cli_module.sigint_handler(2, None)

    assert excinfo.value.code == 130
