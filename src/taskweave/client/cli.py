"""Interactive shell around a single streaming agent."""

from __future__ import annotations

import asyncio
import logging
from typing import Tuple

from taskweave.agent.agent_loop import (
    AgentExecutor,
    ExecutorConfig,
)
from taskweave.agent.llm import (
    CompletionClient,
    create_client,
)
from taskweave.agent.planner_interface import BasePlanner
from taskweave.agent.react_planner import ReActPlanner
from taskweave.agent.tool_calling_planner import ToolCallingPlanner
from taskweave.common import (
    AnsiColors,
    colored_print,
    truncate,
)
from taskweave.config import settings
from taskweave.core.schema import (
    AgentAction,
    ErrorEvent,
    FinishEvent,
    HumanConfirmEvent,
    TokenEvent,
    ToolEndEvent,
    ToolStartEvent,
)
from taskweave.memory import (
    FileStorage,
    WindowBufferMemory,
)
from taskweave.tools.builtin import (
    create_calculator_tool,
    create_current_time_tool,
    create_save_note_tool,
)

logger = logging.getLogger(__name__)

SESSION_KEY = "cli_session"


# ---------------------------------------------------------------------------
# Input helpers
# ---------------------------------------------------------------------------
def get_user_message() -> Tuple[str, bool]:
    """
    Get a message from the user via standard input.

    Returns:
        Tuple of (user_input, success_flag)
        The success_flag is False if input couldn't be read (e.g., Ctrl+C)
    """
    try:
        return input().strip(), True
    except (EOFError, KeyboardInterrupt):
        return "", False


async def confirm_in_terminal(action: AgentAction) -> bool:
    colored_print(
        f"\n⚠️  Allow {action.tool_name}({action.tool_input})? [y/N] ", AnsiColors.RED, end=""
    )
    answer, ok = await asyncio.to_thread(get_user_message)
    return ok and answer.lower() in {"y", "yes"}


# ---------------------------------------------------------------------------
# Shell
# ---------------------------------------------------------------------------
def build_executor(agent_type: str, client: CompletionClient) -> AgentExecutor:
    tools = [create_calculator_tool(), create_current_time_tool(), create_save_note_tool()]
    memory = WindowBufferMemory(
        window_size=settings.MEMORY_WINDOW_SIZE, key=SESSION_KEY, storage=FileStorage()
    )
    planner: BasePlanner
    if agent_type == "tool_calling":
        planner = ToolCallingPlanner(tools, client, memory=memory)
    else:
        planner = ReActPlanner(tools, client, memory=memory)
    return AgentExecutor(planner, config=ExecutorConfig(human_confirmation=confirm_in_terminal))


async def _shell(executor: AgentExecutor) -> None:
    colored_print("\n🔮 taskweave shell - type 'exit' or 'quit' (or Ctrl+C) to exit", AnsiColors.GREEN)
    while True:
        colored_print("\n🧑 You: ", AnsiColors.BLUE, end="")
        user_msg, ok = await asyncio.to_thread(get_user_message)
        if not ok or user_msg.lower() in {"exit", "quit"}:
            break
        if not user_msg:
            continue

        async for event in executor.stream(user_msg):
            if isinstance(event, TokenEvent):
                colored_print(event.content, AnsiColors.GREY, end="", flush=True)
            elif isinstance(event, ToolStartEvent):
                colored_print(
                    f"\n[{event.action.tool_name}] {event.action.tool_input}", AnsiColors.GREEN
                )
            elif isinstance(event, HumanConfirmEvent) and not event.confirmed:
                colored_print(f"[{event.action.tool_name}] rejected", AnsiColors.RED)
            elif isinstance(event, ToolEndEvent):
                colored_print(
                    f"[{event.step.action.tool_name}] -> {truncate(event.step.observation)}",
                    AnsiColors.GREEN,
                )
            elif isinstance(event, ErrorEvent):
                colored_print(event.error, AnsiColors.RED)
            elif isinstance(event, FinishEvent):
                colored_print(f"\n🤖 {event.output}", AnsiColors.YELLOW)


def run_cli(agent_type: str = "react") -> None:
    """Run the interactive shell against the configured completion back-end."""
    executor = build_executor(agent_type, create_client())
    logger.info("CLI session using %s planner (memory key %s)", agent_type, SESSION_KEY)
    asyncio.run(_shell(executor))


if __name__ == "__main__":
    run_cli()
