#!/usr/bin/env python3
# -*- coding: utf-8 -*-
from __future__ import annotations

import argparse
import locale
import logging
import sys

from .app import NewsApp
from .config import load_config, setup_logging
from .datamodels import Category

logger = logging.getLogger("newsspeak")


# --- Entrypoint ---
def main() -> None:
    parser = argparse.ArgumentParser(description="NewsSpeak terminal news reader")
    parser.add_argument("--debug", action="store_true", help="Enable debug logging")
    parser.add_argument("--theme", type=str, help="Textual theme to use for this run")
    parser.add_argument(
        "--category",
        type=str,
        choices=[c.value for c in Category],
        help="Open on a headline category",
    )
    parser.add_argument("--search", type=str, help="Open on search results for a keyword")
    parser.add_argument(
        "--no-speech", action="store_true", help="Disable voice search and narration"
    )
    args = parser.parse_args()

    debug_path = setup_logging(args.debug)
    if debug_path:
        print(f"Debug logging enabled: {debug_path}", file=sys.stderr)

    try:
        locale.setlocale(locale.LC_COLLATE, "")
    except locale.Error as e:
        logger.warning("Could not apply the user collation locale: %s", e)

    config = load_config()
    theme_name = args.theme or config.get("theme")
    logger.info("Using theme: %s", theme_name)

    try:
        app = NewsApp(
            theme=theme_name,
            config=config,
            search=args.search,
            category=args.category,
            enable_speech=not args.no_speech,
        )
        app.run()
    except Exception as e:
        logger.exception("Application crashed: %s", e)
        print(f"Application crashed: {e}", file=sys.stderr)
        sys.exit(1)


if __name__ == "__main__":
    main()
