"""Command line entry points for serving the relay or classifying a single image."""

from __future__ import annotations

import argparse
import json
import logging
import sys
from pathlib import Path

import uvicorn

from module_2_classification_relay.app.dependencies import build_relay_service, setup_logging
from module_2_classification_relay.app.settings import get_settings
from module_2_classification_relay.core.errors import RelayError


logger = logging.getLogger(__name__)


def _serve(args: argparse.Namespace) -> int:
    settings = get_settings()
    setup_logging(settings)
    host = args.host or settings.host
    port = args.port or settings.port
    logger.info("Server running on port %d", port)
    uvicorn.run("module_2_classification_relay.app.main:app", host=host, port=port, log_config=None)
    return 0


def _classify(args: argparse.Namespace) -> int:
    settings = get_settings()
    setup_logging(settings)
    path: Path = args.image
    if not path.is_file():
        print(f"Image not found: {path}", file=sys.stderr)
        return 2

    service = build_relay_service(settings)
    try:
        result = service.classify(path.read_bytes(), path.name)
    except RelayError as exc:
        logger.error("Classification failed: %s", exc)
        return 1
    print(json.dumps(result.to_response(), indent=2))
    return 0


def build_arg_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(description="Module 2 - Classification Relay")
    subparsers = parser.add_subparsers(dest="command", required=True)

    serve = subparsers.add_parser("serve", help="Run the HTTP relay.")
    serve.add_argument("--host", type=str, default=None, help="Bind address (default: HOST or 0.0.0.0).")
    serve.add_argument("--port", type=int, default=None, help="Listen port (default: PORT or 5000).")
    serve.set_defaults(handler=_serve)

    classify = subparsers.add_parser("classify", help="Upload one image and print its labels.")
    classify.add_argument("image", type=Path, help="Path to a JPEG or PNG image.")
    classify.set_defaults(handler=_classify)
    return parser


def main() -> None:
    parser = build_arg_parser()
    args = parser.parse_args()
    sys.exit(args.handler(args))


if __name__ == "__main__":
    main()
