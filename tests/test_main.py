from __future__ import annotations

import json
import math

import pytest

from gsc_insights import main as cli


@pytest.fixture(autouse=True)
def _gsc_env(monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.setattr(cli, "load_dotenv", lambda *args, **kwargs: False)
    monkeypatch.setenv("GSC_SITE_URL", "example.com")
    monkeypatch.setenv("GSC_CREDENTIALS_PATH", "/secrets/sa.json")
    monkeypatch.delenv("GOOGLE_APPLICATION_CREDENTIALS", raising=False)
    monkeypatch.delenv("GSC_OAUTH_CLIENT_SECRET_PATH", raising=False)
    monkeypatch.delenv("GSC_OAUTH_REFRESH_TOKEN", raising=False)


def test_compare_periods_prints_json(monkeypatch: pytest.MonkeyPatch, capsys) -> None:
    seen: dict = {}

    def fake_compare_periods(client, site_url, **kwargs):
        seen["site_url"] = site_url
        seen.update(kwargs)
        return {"comparisons": [{"delta": {"clicks_pct": math.inf}}]}

    monkeypatch.setattr(cli, "compare_periods", fake_compare_periods)

    cli.main(["--run-date", "2026-01-15", "compare-periods", "--days", "7", "--dimensions", "query,page"])

    payload = json.loads(capsys.readouterr().out)
    assert payload == {"comparisons": [{"delta": {"clicks_pct": "Infinity"}}]}
    assert seen["site_url"] == "https://example.com/"
    assert seen["days"] == 7
    assert seen["dimensions"] == ("query", "page")
    assert str(seen["today"]) == "2026-01-15"
    assert "row_limit" not in seen


def test_output_file_is_written(monkeypatch: pytest.MonkeyPatch, tmp_path, capsys) -> None:
    monkeypatch.setattr(cli, "batch_inspect", lambda client, site_url, urls, **_: {"total": len(urls)})
    target = tmp_path / "reports" / "inspect.json"

    cli.main(["--output", str(target), "batch-inspect", "https://example.com/a", "https://example.com/b"])

    assert json.loads(target.read_text(encoding="utf-8")) == {"total": 2}
    assert "Report written" in capsys.readouterr().out


def test_missing_credentials_exit(monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.delenv("GSC_CREDENTIALS_PATH", raising=False)
    with pytest.raises(SystemExit, match="GSC is not configured"):
        cli.main(["quick-wins", "--days", "28"])


def test_missing_window_is_reported(monkeypatch: pytest.MonkeyPatch) -> None:
    with pytest.raises(SystemExit, match="cannibalization failed"):
        cli.main(["cannibalization", "--start-date", "2026-01-01"])
