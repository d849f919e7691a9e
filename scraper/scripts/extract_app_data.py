#!/usr/bin/env python3
"""CLI shim for the app data extractor."""
from __future__ import annotations

import asyncio
import sys

from gatc_extractor.logging import configure_logging, jlog, logging_context, set_global_context
from gatc_extractor.pipeline import EXIT_CONFIG_ERROR, CliArgs, parse_args, run
from gatc_extractor.versioning import SCRIPT_NAME, get_extractor_version


def main() -> None:
    configure_logging()
    set_global_context(app="gatc_extractor", pipeline=SCRIPT_NAME)
    version = get_extractor_version()
    with logging_context(script=SCRIPT_NAME, extractor_version=version):
        args: CliArgs = parse_args()
        try:
            code = asyncio.run(run(args))
        except ValueError as exc:
            jlog("error", event="config_error", error=str(exc))
            code = EXIT_CONFIG_ERROR
    sys.exit(code)


if __name__ == "__main__":
    main()
