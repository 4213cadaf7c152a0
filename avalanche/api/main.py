from __future__ import annotations

import argparse
import logging
import sys
from pathlib import Path

import uvicorn
from dotenv import load_dotenv

from ..runtime.lifecycle import AnalysisLifecycle
from .config_loader import DEFAULT_CONFIG_PATH, build_analyzer_factory, load_config
from .server import create_app

logger = logging.getLogger(__name__)


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        description="Run the avalanche analyzer API server",
        epilog=f"Configuration is loaded from {DEFAULT_CONFIG_PATH}. "
        "CLI arguments override config file settings.",
    )
    parser.add_argument(
        "--config",
        type=str,
        default=str(DEFAULT_CONFIG_PATH),
        help=f"Path to JSON configuration file (default: {DEFAULT_CONFIG_PATH})",
    )
    parser.add_argument(
        "--host",
        type=str,
        default=None,
        help="Override server host (default: from config file)",
    )
    parser.add_argument(
        "--port",
        type=int,
        default=None,
        help="Override server port (default: from config file)",
    )
    parser.add_argument(
        "--log-level",
        type=str,
        default="info",
        choices=["debug", "info", "warning", "error"],
        help="Logging verbosity (default: info)",
    )
    return parser


def main(argv: list[str] | None = None) -> None:
    load_dotenv()
    parser = build_parser()
    args = parser.parse_args(argv)
    if not logging.getLogger().handlers:
        logging.basicConfig(
            level=getattr(logging, args.log_level.upper()),
            format="%(levelname)s [%(name)s] %(message)s",
        )

    config_path = Path(args.config)
    try:
        cfg = load_config(config_path if config_path.exists() else None)
    except (OSError, ValueError) as exc:
        logger.error("Failed to load configuration: %s", exc)
        sys.exit(1)

    if args.host:
        cfg.server.host = args.host
    if args.port:
        cfg.server.port = args.port

    api_key = cfg.openai.resolve_api_key()
    if not api_key:
        logger.warning(
            "Environment variable %s is not set; requests must supply an api_key",
            cfg.openai.api_key_env,
        )

    logger.info("Server configuration: %s:%d", cfg.server.host, cfg.server.port)
    logger.info(
        "Classifier model=%s min_margin=%d min_score=%d",
        cfg.openai.model,
        cfg.validation.min_margin,
        cfg.validation.min_score,
    )

    lifecycle = AnalysisLifecycle(analyzer_factory=build_analyzer_factory(cfg))
    app = create_app(lifecycle=lifecycle, api_key=api_key)
    try:
        uvicorn.run(
            app,
            host=cfg.server.host,
            port=cfg.server.port,
            log_level=args.log_level,
        )
    finally:
        lifecycle.close()


if __name__ == "__main__":
    main()
