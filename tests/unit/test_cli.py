from __future__ import annotations

import json

import pytest

from receiptparse.cli import EXIT_IO, EXIT_OK, EXIT_UNSUPPORTED, main
from receiptparse.utils.config import load_config

GS25 = "GS25 강남점\n2025-10-09\n삼각김밥 1 1500 1500\n합계 1500"


@pytest.fixture
def workspace(tmp_path, monkeypatch):
    monkeypatch.setenv("RECEIPTPARSE_DATA_DIR", str(tmp_path / "data"))
    receipt = tmp_path / "gs25.txt"
    receipt.write_text(GS25, encoding="utf-8")
    return tmp_path, ["--log-dir", str(tmp_path / "logs")], receipt


def test_init_config_writes_defaults(tmp_path, capsys) -> None:
    p = tmp_path / "cfg" / "receiptparse.yaml"
    assert main(["init-config", str(p)]) == EXIT_OK
    assert str(p) in capsys.readouterr().out
    assert load_config(p)["engine"]["timeout_sec"] == 10


def test_parse_prints_outcome(workspace, capsys) -> None:
    _, common, receipt = workspace
    assert main(common + ["parse", str(receipt)]) == EXIT_OK
    out = json.loads(capsys.readouterr().out)
    assert out["typeKey"] == "convenience"
    assert out["result"]["totals"]["total"] == 1500


def test_parse_purchase_record(workspace, capsys) -> None:
    _, common, receipt = workspace
    assert main(common + ["parse", str(receipt), "--type", "convenience", "--purchase"]) == EXIT_OK
    rec = json.loads(capsys.readouterr().out)
    assert rec["useName"] == "GS25 강남점"
    assert rec["total"] == 1500
    assert rec["saleDate"] == "2025-10-09"


def test_parse_unknown_type(workspace, capsys) -> None:
    _, common, receipt = workspace
    assert main(common + ["parse", str(receipt), "--type", "bogus"]) == EXIT_UNSUPPORTED
    assert "bogus" in capsys.readouterr().err


def test_missing_file(workspace, capsys) -> None:
    tmp_path, common, _ = workspace
    assert main(common + ["detect", str(tmp_path / "nope.txt")]) == EXIT_IO


def test_detect(workspace, capsys) -> None:
    _, common, receipt = workspace
    assert main(common + ["detect", str(receipt)]) == EXIT_OK
    out = json.loads(capsys.readouterr().out)
    assert (out["typeKey"], out["template"]) == ("convenience", "CONVENIENCE")


def test_no_command_prints_help(capsys) -> None:
    assert main([]) == EXIT_OK
    assert "receiptparse" in capsys.readouterr().out
