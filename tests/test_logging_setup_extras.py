import json
import logging
import os
import re

from receiptparse.utils import logging_setup


def test_compute_max_lines_env(monkeypatch):
    monkeypatch.setenv("RECEIPTPARSE_LOG_MAX_LINES", "")
    monkeypatch.setenv("RECEIPTPARSE_LOG_RETENTION_DAYS", "3")
    monkeypatch.setenv("RECEIPTPARSE_LOG_LINES_PER_DAY_ESTIMATE", "1000")
    val = logging_setup._compute_max_lines()
    assert val == 3000


def test_compute_max_lines_explicit_wins(monkeypatch):
    monkeypatch.setenv("RECEIPTPARSE_LOG_MAX_LINES", "1234")
    assert logging_setup._compute_max_lines() == 1234


def test_log_event_respects_detail(monkeypatch, caplog):
    root = logging.getLogger()
    caplog.set_level(logging.INFO)
    prev = getattr(root, "_receiptparse_log_detail", True)
    try:
        setattr(root, "_receiptparse_log_detail", False)
        logging_setup.log_event(logging.getLogger("receiptparse.test"), "detail.test", "msg", big="x" * 1000, small="ok")
    finally:
        setattr(root, "_receiptparse_log_detail", prev)
    assert "small='ok'" in caplog.text
    # big should be trimmed away when detail disabled
    assert "big=" not in caplog.text


def test_line_capped_handler_keeps_last_lines(tmp_path):
    path = tmp_path / "capped.log"
    handler = logging_setup.LineCappedFileHandler(path, max_lines=5, encoding="utf-8")
    handler.setFormatter(logging.Formatter("%(message)s"))
    logger = logging.getLogger("receiptparse.test_capped")
    logger.propagate = False
    logger.setLevel(logging.INFO)
    logger.addHandler(handler)
    try:
        for i in range(20):
            logger.info("line %d", i)
    finally:
        logger.removeHandler(handler)
        handler.close()
    lines = path.read_text(encoding="utf-8").splitlines()
    # trimmed once the file runs a chunk past the cap
    assert len(lines) < 15
    assert lines[-1] == "line 19"
    assert os.path.exists(path)


def _drop_installed_handlers():
    root = logging.getLogger()
    for h in list(logging_setup._installed):
        root.removeHandler(h)
        h.close()
    logging_setup._installed.clear()
    logging_setup._installed_dir = None


def test_compute_max_lines_config_between_env_and_estimate(monkeypatch):
    monkeypatch.setenv("RECEIPTPARSE_LOG_MAX_LINES", "")
    assert logging_setup._compute_max_lines(2500) == 2500
    monkeypatch.setenv("RECEIPTPARSE_LOG_MAX_LINES", "77")
    assert logging_setup._compute_max_lines(2500) == 77


def test_setup_logging_writes_text_and_trace(tmp_path, monkeypatch):
    monkeypatch.delenv("RECEIPTPARSE_LOG_LEVEL", raising=False)
    monkeypatch.delenv("RECEIPTPARSE_LOG_CONSOLE", raising=False)
    try:
        logger = logging_setup.setup_logging(tmp_path / "a", name="receiptparse.test_setup", settings={"max_lines": 2000})
        logging_setup.log_event(logger, "unit.event", "hello", merchant="마트")
        text = (tmp_path / "a" / logging_setup.TEXT_LOG_NAME).read_text(encoding="utf-8")
        trace = (tmp_path / "a" / logging_setup.TRACE_LOG_NAME).read_text(encoding="utf-8").splitlines()
        assert "hello | merchant='마트'" in text
        events = [json.loads(line)["event_name"] for line in trace]
        assert events[:1] == ["logging.start"]
        assert "unit.event" in events

        # a second directory takes over; the first stops growing
        logging_setup.setup_logging(tmp_path / "b", name="receiptparse.test_setup")
        logger.info("moved")
        assert "moved" in (tmp_path / "b" / logging_setup.TEXT_LOG_NAME).read_text(encoding="utf-8")
        assert "moved" not in (tmp_path / "a" / logging_setup.TEXT_LOG_NAME).read_text(encoding="utf-8")
        assert len(logging_setup._installed) == 2
    finally:
        _drop_installed_handlers()


def test_two_handlers_on_one_file_keep_whole_lines(tmp_path):
    path = tmp_path / "shared.log"
    handlers = [logging_setup.LineCappedFileHandler(path, max_lines=5) for _ in range(2)]
    loggers = []
    for n, h in enumerate(handlers):
        h.setFormatter(logging.Formatter("%(message)s"))
        lg = logging.getLogger(f"receiptparse.test_shared_{n}")
        lg.propagate = False
        lg.setLevel(logging.INFO)
        lg.addHandler(h)
        loggers.append(lg)
    try:
        for i in range(40):
            loggers[i % 2].info("writer%d line %d", i % 2, i)
    finally:
        for lg, h in zip(loggers, handlers):
            lg.removeHandler(h)
            h.close()

    lines = path.read_text(encoding="utf-8").splitlines()
    assert lines[-1] == "writer1 line 39"
    assert all(re.fullmatch(r"writer[01] line \d+", ln) for ln in lines)
    assert len(lines) < 40
    assert (tmp_path / "shared.log.lock").exists()
