"""Command-line entry point for the mailqa pipeline.

Runs the pipeline once (the default), watches the templates directory and
re-runs on change (``--watch``), or serves the HTTP API (``--server``).
"""

from __future__ import annotations

import argparse
import asyncio
import logging
import sys
from pathlib import Path

from mailqa_core.errors import ConfigError
from mailqa_core.types.common import Trigger

from mailqa_runner.config import (
    PipelineConfig,
    load_pipeline_config,
    parse_mode,
    parse_template_list,
)
from mailqa_runner.orchestrator import PipelineResult
from mailqa_runner.server import build_pipeline, create_app
from mailqa_runner.watcher import DEFAULT_DEBOUNCE, TemplateWatcher

logger = logging.getLogger(__name__)


def build_parser() -> argparse.ArgumentParser:
    """Build the argument parser."""
    parser = argparse.ArgumentParser(
        prog="mailqa",
        description="Compile, test and compare MJML email templates",
    )
    parser.add_argument(
        "config",
        type=Path,
        nargs="?",
        help="Path to pipeline configuration YAML file (default: built-in defaults)",
    )
    parser.add_argument(
        "--templates",
        help="Comma-separated template subset to test (default: all)",
    )
    parser.add_argument(
        "--mode",
        choices=["strict", "lenient"],
        help="Failure policy (default: from configuration)",
    )
    parser.add_argument(
        "--skip-planning",
        action="store_true",
        help="Skip the test planning phase",
    )
    surface = parser.add_mutually_exclusive_group()
    surface.add_argument(
        "--watch",
        action="store_true",
        help="Re-run the pipeline when templates change",
    )
    surface.add_argument(
        "--server",
        action="store_true",
        help="Serve the HTTP API and dashboard",
    )
    parser.add_argument(
        "--debounce",
        type=float,
        default=DEFAULT_DEBOUNCE,
        help=f"Watch mode quiet period in seconds (default: {DEFAULT_DEBOUNCE})",
    )
    parser.add_argument(
        "--host",
        default="0.0.0.0",
        help="Host to bind to (default: 0.0.0.0)",
    )
    parser.add_argument(
        "--port",
        type=int,
        default=8000,
        help="Port to listen on (default: 8000)",
    )
    parser.add_argument(
        "--log-level",
        default="INFO",
        choices=["DEBUG", "INFO", "WARNING", "ERROR"],
        help="Logging level (default: INFO)",
    )
    return parser


def load_config(path: Path | None) -> PipelineConfig:
    """Load the configuration file, or the defaults when no path is given."""
    if path is None:
        return PipelineConfig.default()
    return load_pipeline_config(path)


async def run_once(config: PipelineConfig, args: argparse.Namespace) -> PipelineResult:
    """Run the pipeline once with the command-line overrides."""
    pipeline = build_pipeline(config)
    templates = parse_template_list(args.templates) if args.templates else None
    mode = parse_mode(args.mode) if args.mode else None
    return await pipeline.run(
        Trigger.CLI,
        templates=templates,
        mode=mode,
        skip_planning=args.skip_planning,
    )


async def watch(config: PipelineConfig, debounce: float) -> None:
    """Watch the templates directory until interrupted."""
    watcher = TemplateWatcher(build_pipeline(config), debounce=debounce)
    await watcher.run_forever()


def main(argv: list[str] | None = None) -> None:
    """Command-line entry point."""
    args = build_parser().parse_args(argv)

    logging.basicConfig(
        level=getattr(logging, args.log_level),
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )

    if args.config is not None and not args.config.exists():
        logger.error("Config file not found: %s", args.config)
        sys.exit(1)

    if args.server:
        import uvicorn  # pylint: disable=import-outside-toplevel

        app = create_app(args.config)
        uvicorn.run(app, host=args.host, port=args.port)
        return

    try:
        config = load_config(args.config)
    except ConfigError as exc:
        logger.error("Invalid configuration: %s", exc)
        sys.exit(1)

    if args.watch:
        try:
            asyncio.run(watch(config, args.debounce))
        except KeyboardInterrupt:
            logger.info("Watch stopped")
        return

    result = asyncio.run(run_once(config, args))
    if result.succeeded:
        logger.info("Pipeline %s: %s", result.status, result.overall_status.value)
    else:
        logger.error("Pipeline %s: %s", result.status, result.error or result.reason)
    sys.exit(0 if result.succeeded else 1)


if __name__ == "__main__":
    main()
