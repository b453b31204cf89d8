"""Command line entry point for restsim runs."""
from __future__ import annotations

import argparse
import logging
import sys
from pathlib import Path
from typing import List, Optional

from . import config_utils
from .config_utils import configure_logging, load_config
from .errors import RestSimError
from .orchestrator import RunOrchestrator, RunRequest, interrupt_handler

logger = logging.getLogger(__name__)


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(description="Run a particle-transport simulation")
    parser.add_argument("--config", type=Path, required=True, help="Path to YAML configuration")
    parser.add_argument(
        "--events",
        type=int,
        help="Number of primaries to simulate; 0 starts an interactive session",
    )
    parser.add_argument(
        "--entries",
        type=int,
        dest="desired_entries",
        help="Stop the batch once this many events were stored",
    )
    parser.add_argument(
        "--time",
        type=float,
        dest="time_limit_seconds",
        help="Wall-clock limit for the batch in seconds",
    )
    parser.add_argument("--threads", type=int, help="Worker threads (0 selects the serial kernel)")
    parser.add_argument(
        "--output",
        help="Output directory; '{run_tag}' is replaced by the resolved run tag",
    )
    parser.add_argument("--geometry", type=Path, help="Override the GDML geometry file")
    parser.add_argument("--seed", type=int, help="Random seed")
    parser.add_argument(
        "--override",
        action="append",
        nargs="+",
        metavar="PATH=VALUE",
        help=(
            "Apply configuration overrides using dotted paths; e.g. "
            "--override physics.cuts.gamma_mm=0.05"
        ),
    )
    parser.add_argument(
        "--overrides-file",
        action="append",
        type=Path,
        help="Load overrides from a file (one PATH=VALUE per line).",
    )
    parser.add_argument(
        "--progress",
        action="store_true",
        default=None,
        help="Show a console progress bar with ETA for batch runs.",
    )
    parser.add_argument(
        "--quiet",
        action=argparse.BooleanOptionalAction,
        default=None,
        help="Suppress INFO logs and Python warnings (defaults to io.quiet from the configuration).",
    )
    return parser


def main(argv: Optional[List[str]] = None) -> int:
    """Command line entry point; returns the process exit code."""

    args = build_parser().parse_args(argv)
    configure_logging(
        logging.WARNING if args.quiet else logging.INFO,
        suppress_warnings=bool(args.quiet),
    )

    try:
        override_list: List[str] = []
        if args.overrides_file:
            for override_path in args.overrides_file:
                override_list.extend(config_utils.read_overrides_file(override_path))
        if args.override:
            for group in args.override:
                override_list.extend(group)
        if args.quiet is None and load_config(args.config, overrides=override_list).io.quiet:
            configure_logging(logging.WARNING, suppress_warnings=True)

        request = RunRequest(
            config_path=args.config,
            overrides=override_list,
            events=args.events,
            desired_entries=args.desired_entries,
            time_limit_seconds=args.time_limit_seconds,
            threads=args.threads,
            output=args.output,
            geometry=args.geometry,
            seed=args.seed,
            progress=args.progress,
        )
        orchestrator = RunOrchestrator(request)
        with interrupt_handler(orchestrator):
            result = orchestrator.run()
    except RestSimError as exc:
        logger.error("%s", exc)
        return 1
    if result.interrupted:
        logger.warning("Run was interrupted after %d events", result.events_processed)
    return 0


def entrypoint() -> None:
    sys.exit(main())


if __name__ == "__main__":  # pragma: no cover - standard CLI entrypoint
    entrypoint()
