from __future__ import annotations

import argparse
import json
import logging
import sys
from pathlib import Path
from typing import Any, Optional, Sequence

from receiptparse.extract.detector import detect
from receiptparse.extract.dispatcher import SUPPORTED_TYPE_KEYS, UnsupportedReceiptType
from receiptparse.extract.document import Document
from receiptparse.service.runner import ParseRunner, PurchaseRequest, build_purchase_record
from receiptparse.utils.config import DEFAULT_CONFIG, DEFAULT_CONFIG_NAME, load_config, save_yaml
from receiptparse.utils.paths import resolve_app_paths
from receiptparse.utils.logging_setup import setup_logging
from receiptparse.utils.text_normalizer import normalize_text

EXIT_OK = 0
EXIT_UNSUPPORTED = 2
EXIT_IO = 3


def _dump(obj: Any) -> None:
    sys.stdout.write(json.dumps(obj, ensure_ascii=False, indent=2) + "\n")


def _build_parser() -> argparse.ArgumentParser:
    ap = argparse.ArgumentParser(prog="receiptparse", description="Structured data from Korean receipt OCR text.")
    ap.add_argument("--config", default=None, help=f"YAML config (default: <data_dir>/{DEFAULT_CONFIG_NAME})")
    ap.add_argument("--log-dir", default=None)
    sub = ap.add_subparsers(dest="command")

    ap_parse = sub.add_parser("parse", help="parse one OCR text or document JSON file")
    ap_parse.add_argument("file", type=Path)
    ap_parse.add_argument("--type", dest="type_key", default=None, help=f"one of: {', '.join(SUPPORTED_TYPE_KEYS)}")
    ap_parse.add_argument("--timeout", type=float, default=None)
    ap_parse.add_argument("--purchase", action="store_true", help="print the flat purchase record instead")
    ap_parse.add_argument("--merchant", default=None, help="fallback merchant name")
    ap_parse.add_argument("--amount", type=int, default=None, help="fallback amount")
    ap_parse.add_argument("--date", default=None, help="fallback sale date")

    ap_detect = sub.add_parser("detect", help="print the detected type key and template")
    ap_detect.add_argument("file", type=Path)

    ap_init = sub.add_parser("init-config", help="write a config file with defaults")
    ap_init.add_argument("path", type=Path)
    return ap


def _cmd_parse(args: argparse.Namespace, cfg: dict, log: logging.Logger) -> int:
    doc = Document.load(args.file)
    if args.timeout is not None:
        cfg["engine"]["timeout_sec"] = args.timeout
    type_key = args.type_key or cfg["engine"].get("default_type")
    request = PurchaseRequest(merchant_name=args.merchant, amount=args.amount, sale_date=args.date)

    with ParseRunner.from_config(cfg) as runner:
        try:
            outcome = runner.submit(doc, type_key, request, document_id=args.file.name)
        except UnsupportedReceiptType as e:
            log.warning("Unsupported type key: %s", e.type_key)
            sys.stderr.write(f"{e}\n")
            return EXIT_UNSUPPORTED

    if args.purchase:
        _dump(build_purchase_record(outcome, request))
    else:
        _dump(outcome.to_dict())
    return EXIT_OK


def _cmd_detect(args: argparse.Namespace) -> int:
    doc = Document.load(args.file)
    d = detect(normalize_text(doc.text))
    _dump({"typeKey": d.type_key, "template": d.template, "confidence": d.confidence, "scores": dict(d.scores)})
    return EXIT_OK


def main(argv: Optional[Sequence[str]] = None) -> int:
    ap = _build_parser()
    args = ap.parse_args(argv)
    if not getattr(args, "command", None):
        ap.print_help()
        return EXIT_OK

    if args.command == "init-config":
        save_yaml(args.path, DEFAULT_CONFIG)
        sys.stdout.write(f"{args.path}\n")
        return EXIT_OK

    cfg = load_config(Path(args.config) if args.config else None)
    paths = resolve_app_paths(cfg["app"].get("data_dir"), args.log_dir or cfg["app"].get("log_dir"), args.config)
    if args.config is None and paths.config_path.exists():
        cfg = load_config(paths.config_path)
    log = setup_logging(paths.log_dir, name="receiptparse.cli", settings=cfg["logging"])

    try:
        if args.command == "detect":
            return _cmd_detect(args)
        return _cmd_parse(args, cfg, log)
    except OSError as e:
        log.error("Cannot read %s: %s", getattr(args, "file", None), e)
        sys.stderr.write(f"{e}\n")
        return EXIT_IO


if __name__ == "__main__":
    raise SystemExit(main())
