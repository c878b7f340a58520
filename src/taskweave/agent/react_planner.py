"""
ReAct planner: prompt + parse.

Works with any completion service, including ones without function calling.  The model is asked
to answer in a Thought / Action / Action Input / Observation layout, and its free-form output is
parsed tolerantly:

1. ``Final Answer:`` present -> finish (always wins, even if an ``Action:`` also matches).
2. ``Action:`` present -> one tool action; ``Action Input:`` is read as JSON, then ``key: value``
   lines, then as a single ``input`` field.
3. Neither -> the whole output is the final answer.
"""

from __future__ import annotations

import logging
import re
from typing import (
    AsyncIterator,
    Dict,
    List,
    Sequence,
    Tuple,
)

from taskweave.agent.llm import (
    CompletionClient,
    supports_streaming,
)
from taskweave.agent.planner_interface import (
    BasePlanner,
    PlannerConfig,
)
from taskweave.core.messages import AgentMessage
from taskweave.core.parsing import (
    parse_action_input,
    stable_json,
)
from taskweave.core.schema import (
    AgentAction,
    AgentDecision,
    AgentFinish,
    AgentStep,
    FinishEvent,
    StreamEvent,
    TokenEvent,
    ToolStartEvent,
)
from taskweave.memory.base import BaseMemory
from taskweave.tools import BaseTool

logger = logging.getLogger(__name__)

ENGLISH_REACT_PROMPT = """\
You are a helpful assistant that can use tools to help users.

Available tools:
{tools}

Please respond in the following format:

Question: the input question you must answer
Thought: you should always think about what to do
Action: the action to take, should be one of [{tool_names}]
Action Input: the input to the action (JSON format)
Observation: the result of the action
... (this Thought/Action/Action Input/Observation can repeat N times)
Thought: I now know the final answer
Final Answer: the final answer to the original input question

Important:
1. Action Input must be valid JSON
2. Only one action per step
3. If no tool is needed, provide Final Answer directly

Begin!"""

CHINESE_REACT_PROMPT = """\
你是一个智能助手，可以使用工具来帮助用户完成任务。

可用工具：
{tools}

请严格按照以下格式思考和行动：

Question: 用户的问题
Thought: 分析问题，决定是否需要使用工具
Action: 选择一个工具，必须是 [{tool_names}] 之一
Action Input: 工具参数（JSON格式）
Observation: 工具返回的结果
... (可以重复多次 Thought/Action/Action Input/Observation)
Thought: 我已经得到了足够的信息
Final Answer: 给用户的完整回答

注意：
1. Action Input 必须是有效的 JSON
2. 每次只能执行一个 Action
3. 如果不需要工具，直接给出 Final Answer

开始！"""

DEFAULT_REACT_PROMPT = ENGLISH_REACT_PROMPT

_FINAL_ANSWER_RE = re.compile(r"Final Answer:\s*([\s\S]*?)(?:$|(?=\nQuestion:))", re.IGNORECASE)
_ACTION_RE = re.compile(r"Action:[ \t]*(\S[^\n]*)", re.IGNORECASE)
_ACTION_INPUT_RE = re.compile(
    r"Action Input:\s*([\s\S]*?)(?=\n(?:Observation|Thought|Action|Final)|$)", re.IGNORECASE
)


def parse_react_output(output: str) -> AgentDecision:
    """Parse one ReAct completion into a decision.  Never raises."""
    final = _FINAL_ANSWER_RE.search(output)
    if final:
        return AgentFinish(output=final.group(1).strip())

    action = _ACTION_RE.search(output)
    if action:
        tool_name = action.group(1).strip().strip("`").strip()
        action_input = _ACTION_INPUT_RE.search(output)
        tool_input = parse_action_input(action_input.group(1)) if action_input else {}
        return [AgentAction(tool_name=tool_name, tool_input=tool_input)]

    logger.debug("ReAct output matched no pattern; treating it as the final answer")
    return AgentFinish(output=output.strip())


def format_scratchpad(steps: Sequence[AgentStep]) -> str:
    """Render executed steps as Thought/Action/Action Input/Observation blocks."""
    blocks = []
    for step in steps:
        blocks.append(
            f"Thought: I need to use the {step.action.tool_name} tool\n"
            f"Action: {step.action.tool_name}\n"
            f"Action Input: {stable_json(step.action.tool_input)}\n"
            f"Observation: {step.observation}"
        )
    return "\n".join(blocks)


class ReActPlanner(BasePlanner):
    """Text-template planner; one action per step."""

    def __init__(
        self,
        tools: Sequence[BaseTool],
        client: CompletionClient,
        memory: BaseMemory | None = None,
        config: PlannerConfig | None = None,
        prompt_template: str | None = None,
    ) -> None:
        super().__init__(tools, client, memory, config)
        self.prompt_template = prompt_template or DEFAULT_REACT_PROMPT

    def build_prompt(
        self, messages: Sequence[AgentMessage], steps: Sequence[AgentStep]
    ) -> Tuple[str, str]:
        """Return the (system, user) prompt pair for one planning call."""
        system = self.prompt_template.replace(
            "{tools}", self.registry.to_prompt_descriptions()
        ).replace("{tool_names}", ", ".join(self.registry.get_names()))
        if self.config.system_prompt:
            system = f"{self.config.system_prompt}\n\n{system}"

        user = ""
        question = next((m for m in messages if m.type == "human"), None)
        if question is not None:
            user += f"Question: {question.content}\n"
        if steps:
            user += "\n" + format_scratchpad(steps)
        return system, user

    async def _request(
        self, messages: Sequence[AgentMessage], steps: Sequence[AgentStep]
    ) -> Tuple[List[Dict[str, str]], Dict]:
        # Memory history is folded into the system prompt as plain text
        system, user = self.build_prompt(messages, steps)
        if self.memory is not None:
            history = self.memory.format_messages(await self.memory.load())
            if history:
                system += f"\n\nPrevious conversation:\n{history}"
        options = {"temperature": self.config.temperature, "max_tokens": self.config.max_tokens}
        return [{"role": "system", "content": system}, {"role": "user", "content": user}], options

    async def plan(
        self, messages: Sequence[AgentMessage], steps: Sequence[AgentStep]
    ) -> AgentDecision:
        request, options = await self._request(messages, steps)
        response = await self.client.generate_completion(request, **options)
        logger.debug("ReAct planner response: %s", response.content)
        return parse_react_output(response.content)

    async def plan_stream(
        self, messages: Sequence[AgentMessage], steps: Sequence[AgentStep]
    ) -> AsyncIterator[StreamEvent]:
        if not supports_streaming(self.client):
            async for event in self._buffered_stream(messages, steps):
                yield event
            return

        request, options = await self._request(messages, steps)
        content = ""
        async for chunk in self.client.generate_completion_stream(request, **options):
            if chunk.type == "token" and chunk.content:
                content += chunk.content
                yield TokenEvent(content=chunk.content)
            elif chunk.type == "done":
                decision = parse_react_output(content)
                if isinstance(decision, AgentFinish):
                    yield FinishEvent(output=decision.output)
                else:
                    for action in decision:
                        yield ToolStartEvent(action=action)
