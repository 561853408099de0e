from __future__ import annotations

from types import SimpleNamespace

import pytest

from crawler import cli
from crawler.models.domain import HarvestedItem
from crawler.tasks.collect import SweepReport


def test_test_mode_without_pattern_exits_non_zero(capsys):
    assert cli.main(["crawl", "--test", "--url", "https://example.com"]) == 1
    assert "--pattern" in capsys.readouterr().out


def test_crawl_without_mode_prints_tip(capsys):
    assert cli.main(["crawl"]) == 0
    assert "Tip" in capsys.readouterr().out


def test_deliver_requires_target():
    with pytest.raises(SystemExit):
        cli.main(["deliver"])


def test_crawl_builds_options_and_displays(monkeypatch, settings, capsys):
    captured = {}

    def fake_run_sweep(options, config):
        captured["options"] = options
        item = HarvestedItem(hash="h", title="Hello", link="https://x/1", created_at="2024-01-01T00:00:00Z", position=1)
        return SweepReport(trace_id="t", sections=1, items=[item])

    monkeypatch.setattr(cli, "get_settings", lambda: settings)
    monkeypatch.setattr(cli, "run_sweep", fake_run_sweep)

    code = cli.main(["crawl", "--all", "--display", "--channels", "bbc,cnn", "--limit", "3"])

    assert code == 0
    options = captured["options"]
    assert options.all and options.display and not options.save
    assert options.channels == ["bbc", "cnn"]
    assert options.limit == 3
    assert options.clusters == settings.upload_workers
    assert "Hello" in capsys.readouterr().out


def test_deliver_passes_email(monkeypatch, settings):
    captured = {}

    def fake_dispatch(config, email=None):
        captured["email"] = email
        return SimpleNamespace(readers=1, sent=1, empty=0, failed=0)

    monkeypatch.setattr(cli, "get_settings", lambda: settings)
    monkeypatch.setattr(cli, "dispatch_digests", fake_dispatch)

    assert cli.main(["deliver", "--email", "reader@example.com"]) == 0
    assert captured["email"] == "reader@example.com"
    assert cli.main(["deliver", "--all"]) == 0
    assert captured["email"] is None


def test_zero_limit_is_reported_not_replaced(monkeypatch, settings, capsys):
    monkeypatch.setattr(cli, "get_settings", lambda: settings)
    monkeypatch.setattr(cli, "run_sweep", lambda options, config: pytest.fail("sweep must not start"))

    assert cli.main(["crawl", "--all", "--limit", "0"]) == 2
    assert "Invalid options" in capsys.readouterr().out
