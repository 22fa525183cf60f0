"""Launch the task-mgmt service: ``python -m task_mgmt``."""

from __future__ import annotations

import argparse
import logging
import sys

import uvicorn

from task_mgmt.api.main import create_app
from task_mgmt.config.settings import current_mode, resolve_settings
from task_mgmt.errors import ConfigurationError

logger = logging.getLogger("task_mgmt")


def _parse_args(argv: list[str] | None = None) -> argparse.Namespace:
    parser = argparse.ArgumentParser(description="Serve the task-mgmt API.")
    parser.add_argument(
        "--mode",
        default=None,
        help="Config mode (develop, production, test). Defaults to $TASK_MGMT_MODE or develop.",
    )
    parser.add_argument("--config-dir", default=None, help="Directory holding config*.json files.")
    parser.add_argument("--host", default="0.0.0.0")
    parser.add_argument("--log-level", default="INFO")
    return parser.parse_args(argv)


def main(argv: list[str] | None = None) -> int:
    args = _parse_args(argv)
    logging.basicConfig(
        level=args.log_level.upper(),
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )

    mode = args.mode or current_mode()
    try:
        settings = resolve_settings(mode, config_dir=args.config_dir)
    except ConfigurationError as exc:
        # The service must not start without its required configuration.
        print(f"server configuration error: {exc}", file=sys.stderr)
        return 1

    logger.info("startup mode=%s settings=%s", mode, settings.summary())
    uvicorn.run(
        create_app(settings_override=settings),
        host=args.host,
        port=int(settings.port),
        log_level=args.log_level.lower(),
    )
    return 0


if __name__ == "__main__":
    raise SystemExit(main())
