#!/usr/bin/env python3
"""
Runner for Case Ledger Service
==============================

Usage:
    python -m case_ledger.run [--host HOST] [--port PORT] [--reload] [--init-db]

Defaults come from API_HOST / API_PORT / API_RELOAD / LOG_LEVEL.
"""

import argparse
import logging
from typing import Any, Dict, List, Optional

import uvicorn

from .config import Settings, get_settings
from .db.session import init_db

logger = logging.getLogger(__name__)


def parse_args(argv: Optional[List[str]], settings: Settings) -> argparse.Namespace:
    parser = argparse.ArgumentParser(description="Run the case ledger API")
    parser.add_argument("--host", default=settings.api_host)
    parser.add_argument("--port", type=int, default=settings.api_port)
    parser.add_argument("--reload", action="store_true", default=settings.api_reload)
    parser.add_argument("--init-db", action="store_true", help="Create tables before serving")
    return parser.parse_args(argv)


def uvicorn_options(args: argparse.Namespace, settings: Settings) -> Dict[str, Any]:
    return {
        "host": args.host,
        "port": args.port,
        "reload": args.reload,
        "log_level": settings.log_level.lower(),
    }


def main(argv: Optional[List[str]] = None) -> None:
    settings = get_settings()
    args = parse_args(argv, settings)
    logging.basicConfig(level=getattr(logging, settings.log_level.upper(), logging.INFO))

    if args.init_db:
        init_db()
        logger.info("Database tables created")

    options = uvicorn_options(args, settings)
    logger.info(f"Case Ledger Service on http://{options['host']}:{options['port']} (ledger: {settings.ledger_mode.value})")
    uvicorn.run("case_ledger.api:app", **options)


if __name__ == "__main__":
    main()
