"""
taskweave entry point.

This file handles startup concerns (arg-parsing, env setup, logging) and launches either the
interactive single-agent shell or a one-shot supervisor/worker run.
"""

import argparse
import asyncio
import logging
import os
import sys
from pathlib import Path

from taskweave.common import (
    AnsiColors,
    colored_print,
    truncate,
)
from taskweave.config import settings

logger = logging.getLogger(__name__)


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------
def _init_logging(level: str) -> None:
    numeric = getattr(logging, level.upper(), logging.INFO)
    logging.basicConfig(
        level=numeric,
        format="%(asctime)s | %(name)s | %(levelname)s | %(message)s",
        stream=sys.stdout,
    )
    logging.getLogger("httpx").setLevel(logging.WARNING)


def _ensure_data_dir() -> None:
    data_dir = Path(settings.DATA_DIR)
    data_dir.mkdir(parents=True, exist_ok=True)
    if not data_dir.is_dir() or not os.access(data_dir, os.W_OK):
        logger.error("Data directory is not writable: %s", data_dir)
        sys.exit(1)


async def _run_team(task: str, agent_type: str) -> None:
    # Lazy imports keep `--help` free of provider SDK imports
    from taskweave.agent.llm import create_client  # pylint: disable=import-outside-toplevel
    from taskweave.multi.executor import (  # pylint: disable=import-outside-toplevel
        create_multi_agent_executor,
        create_worker_agent,
    )
    from taskweave.tools.builtin import (  # pylint: disable=import-outside-toplevel
        create_calculator_tool,
        create_current_time_tool,
    )

    client = create_client()
    workers = [
        create_worker_agent(
            "math_agent",
            "Performs arithmetic calculations",
            client,
            [create_calculator_tool()],
            agent_type=agent_type,
        ),
        create_worker_agent(
            "time_agent",
            "Reports the current date and time",
            client,
            [create_current_time_tool()],
            agent_type=agent_type,
        ),
    ]
    executor = create_multi_agent_executor(client, workers)

    result = await executor.invoke(task)
    for pair in result.qa_pairs:
        color = AnsiColors.GREEN if pair.success else AnsiColors.RED
        colored_print(f"[{pair.agent}] {pair.question} -> {truncate(pair.answer)}", color)
    colored_print(f"\n🤖 {result.output}", AnsiColors.YELLOW)
    logger.info(
        "Team run finished in %d ms after %d iteration(s): %s",
        result.total_duration_ms,
        result.iterations,
        result.agent_sequence,
    )


# ---------------------------------------------------------------------------
# Main
# ---------------------------------------------------------------------------
def main(argv: list[str] | None = None) -> None:
    """
    Main entry point for the taskweave application.

    Sets up the command-line interface, initializes logging, and starts either the interactive
    shell (``cli``) or a single supervisor/worker task (``multi``).
    """
    if argv is None:
        argv = sys.argv[1:]

    parser = argparse.ArgumentParser(description="Run taskweave agents")
    parser.add_argument(
        "--mode",
        choices=["cli", "multi"],
        type=str.lower,
        default="cli",
        help="Interactive single-agent shell or a one-shot multi-agent task (default: cli)",
    )
    parser.add_argument(
        "--agent",
        choices=["react", "tool_calling"],
        type=str.lower,
        default="react",
        help="Decision strategy used by the agent(s) (default: %(default)s)",
    )
    parser.add_argument(
        "--log-level",
        choices=["debug", "info", "warning", "error", "critical"],
        type=str.lower,
        default=settings.LOG_LEVEL,
        help="Logging level (default from env: %(default)s)",
    )
    parser.add_argument("task", nargs="?", help="Task for --mode multi")
    args = parser.parse_args(argv)

    _init_logging(args.log_level)
    _ensure_data_dir()

    logger.info("Starting taskweave [%s mode, %s agent]", args.mode, args.agent)
    logger.debug("Settings: %s", settings.model_dump(exclude={"OPENAI_API_KEY", "ANTHROPIC_API_KEY"}))

    if args.mode == "cli":
        from taskweave.client.cli import run_cli  # pylint: disable=import-outside-toplevel

        run_cli(args.agent)
    else:
        if not args.task:
            parser.error("--mode multi needs a task argument")
        asyncio.run(_run_team(args.task, args.agent))


if __name__ == "__main__":
    main()
