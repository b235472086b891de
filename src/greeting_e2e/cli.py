from __future__ import annotations

import argparse
import contextlib
import logging

from rich.console import Console
from rich.progress import BarColumn, Progress, TextColumn, TimeElapsedColumn

from .clients import GreetingApiClient, GreetingReceiverClient
from .config import GENERATORS, load_config
from .errors import ConfigError
from .generators import build_generator
from .runner import ScenarioRunner, execute

logger = logging.getLogger(__name__)

LOG_FORMAT = "%(asctime)s - %(name)s - %(levelname)s - %(message)s"


def configure_logging(verbosity: int) -> None:
    level = logging.DEBUG if verbosity > 0 else logging.INFO
    logging.basicConfig(level=level, format=LOG_FORMAT)
    # urllib3 logs every connection at DEBUG.
    logging.getLogger("urllib3").setLevel(logging.INFO if verbosity > 1 else logging.WARNING)


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="greeting-e2e",
        description="Run the end-to-end test for the greeting pipeline.",
    )
    parser.add_argument(
        "-c",
        "--config",
        help="Path to a TOML config file. If missing, a template with default values is created.",
    )
    parser.add_argument("--receiver-url", dest="receiver_url", help="Base URL of the greeting receiver")
    parser.add_argument("--api-url", dest="api_url", help="Base URL of the greeting API")
    parser.add_argument("--poll-interval", dest="poll_interval_seconds", type=float, help="Seconds between polls")
    parser.add_argument("--poll-timeout", dest="poll_timeout_seconds", type=float, help="Seconds to wait for processing")
    parser.add_argument("--iterations", dest="num_iterations", type=int, help="Number of greetings to send")
    parser.add_argument("--generator", choices=GENERATORS, help="Greeting message generator")
    parser.add_argument("--no-progress", action="store_true", help="Disable progress bars")
    parser.add_argument("-v", "--verbose", action="count", default=0)
    return parser


_OVERRIDES = (
    "receiver_url",
    "api_url",
    "poll_interval_seconds",
    "poll_timeout_seconds",
    "num_iterations",
    "generator",
)


def main(argv: list[str] | None = None) -> int:
    args = build_parser().parse_args(argv)
    configure_logging(args.verbose)
    console = Console(stderr=True)

    try:
        config = load_config(args.config, overrides={name: getattr(args, name) for name in _OVERRIDES})
    except ConfigError as exc:
        logger.error(str(exc))
        return exc.exit_code
    logger.info("Loaded E2E config: %s", config)

    receiver = GreetingReceiverClient(config.receiver_url)
    api = GreetingApiClient(config.api_url)
    progress = None
    if not args.no_progress:
        progress = Progress(
            TextColumn("[bold]{task.description}"),
            BarColumn(),
            TextColumn("{task.completed}/{task.total}"),
            TimeElapsedColumn(),
            console=console,
        )

    generator = build_generator(config)
    with (
        contextlib.closing(receiver),
        contextlib.closing(api),
        contextlib.closing(generator),
        progress or contextlib.nullcontext(),
    ):
        runner = ScenarioRunner(config, receiver, api, generator, progress=progress)
        outcome = execute(runner)

    console.print(outcome.summary(), style="green" if outcome.passed else "red", markup=False)
    return outcome.exit_code
