"""
Supervisor: routes a task across named workers.

The supervisor asks the completion service for a strict JSON decision
(``{"next": ..., "instruction": ..., "reasoning": ...}``) but never trusts it to comply.  Its reply
goes through a fallback chain where each stage runs only if the previous one failed:

1. a JSON object (fenced or inline) whose ``next`` is a known worker or ``FINISH``;
2. ``"next"`` / ``"instruction"`` fields pulled out with regular expressions;
3. a known worker name anywhere in the text, the text after it being the instruction;
4. capability keywords matched against worker names and description words;
5. completion language (``finish``, ``完成``, ``最终答案``) -> ``FINISH``;
6. the first configured worker (``FINISH`` when there are no workers at all).

A run therefore never fails because the routing text was malformed.
"""

from __future__ import annotations

import json
import logging
import re
from typing import (
    Any,
    Dict,
    List,
    Optional,
)

from taskweave.agent.llm import CompletionClient
from taskweave.core.parsing import extract_json_object
from taskweave.multi.schema import (
    FINISH,
    MultiAgentState,
    SupervisorConfig,
    SupervisorDecision,
    WorkerConfig,
)

logger = logging.getLogger(__name__)

DEFAULT_SUPERVISOR_PROMPT = """\
You are a task coordinator (supervisor).

Available specialist agents:
{workers}

IMPORTANT: reply with exactly one JSON object in this shape and nothing else:
{"next": "agent name", "instruction": "concrete instruction", "reasoning": "why"}

Example:
{"next": "math_agent", "instruction": "compute the square of 100", "reasoning": "the user needs a calculation"}

Rules:
1. next must be one of the agent names listed above, or "FINISH"
2. when the task needs several steps, assign only one step at a time
3. once every step is done set next to "FINISH" and put the final answer in instruction
4. output JSON only, no explanations"""

PLANNING_PROMPT = """\
Analyse the following task and draw up an execution plan.

Task: {task}

Available agents:
{workers}

Write the plan as a numbered list:
1. Step 1: [agent name] - concrete sub-task
2. Step 2: [agent name] - concrete sub-task
...

Only output the plan, do not execute it."""

PLANNER_SYSTEM_PROMPT = "You are an expert at breaking tasks into steps."

_NEXT_RE = re.compile(r'"next"\s*:\s*"([^"]+)"', re.IGNORECASE)
_INSTRUCTION_RE = re.compile(r'"instruction"\s*:\s*"([^"]+)"', re.IGNORECASE)
_PLAN_LINE_RE = re.compile(r"^\d+\.\s*(.+)")
_DESCRIPTION_SPLIT_RE = re.compile(r"[\s,，。.]+")

# Capability -> trigger words; a worker qualifies when its name contains the capability
KEYWORD_TABLE: Dict[str, List[str]] = {
    "math": ["计算", "数学", "加", "减", "乘", "除", "平方", "开方", "calculate", "math"],
    "time": ["时间", "几点", "日期", "现在", "time", "date", "clock"],
    "search": ["搜索", "查找", "查询", "搜一下", "search", "find", "lookup"],
    "code": ["代码", "编程", "程序", "code", "program"],
    "file": ["文件", "读取", "写入", "file", "read", "write"],
}

COMPLETION_WORDS = ("finish", "完成", "最终答案")


def format_workers(workers: List[WorkerConfig]) -> str:
    return "\n".join(f"- {w.name}: {w.description}" for w in workers)


def _as_text(value: Any) -> Optional[str]:
    """Model-supplied JSON field as text; lists and objects are re-serialised."""
    if value is None or isinstance(value, str):
        return value
    if isinstance(value, (list, dict)):
        return json.dumps(value, ensure_ascii=False)
    return str(value)


class Supervisor:
    """Decides which worker runs next, or that the task is finished."""

    def __init__(self, client: CompletionClient, config: SupervisorConfig) -> None:
        self.client = client
        self.config = config
        template = config.system_prompt or DEFAULT_SUPERVISOR_PROMPT
        self.system_prompt = template.replace("{workers}", format_workers(config.workers))

    # ------------------------------------------------------------------ #
    # Worker lookup
    # ------------------------------------------------------------------ #
    def get_worker(self, name: str) -> Optional[WorkerConfig]:
        return next((w for w in self.config.workers if w.name == name), None)

    def worker_names(self) -> List[str]:
        return [w.name for w in self.config.workers]

    def is_valid_worker(self, name: str) -> bool:
        return self.get_worker(name) is not None

    def _is_valid_target(self, name: str) -> bool:
        return name == FINISH or self.is_valid_worker(name)

    # ------------------------------------------------------------------ #
    # Planning
    # ------------------------------------------------------------------ #
    async def plan(self, task: str) -> List[str]:
        """Ask for a numbered plan; falls back to the task itself as the only step."""
        prompt = PLANNING_PROMPT.replace("{task}", task).replace(
            "{workers}", format_workers(self.config.workers)
        )
        response = await self.client.generate_completion(
            [
                {"role": "system", "content": PLANNER_SYSTEM_PROMPT},
                {"role": "user", "content": prompt},
            ]
        )
        steps = []
        for line in response.content.splitlines():
            match = _PLAN_LINE_RE.match(line.strip())
            if match:
                steps.append(match.group(1).strip())
        return steps or [task]

    # ------------------------------------------------------------------ #
    # Deciding
    # ------------------------------------------------------------------ #
    def build_context_messages(self, state: MultiAgentState) -> List[Dict[str, str]]:
        messages = [
            {"role": "system", "content": self.system_prompt},
            {"role": "user", "content": f"Task: {state.task}"},
        ]
        if state.plan:
            numbered = "\n".join(f"{i}. {step}" for i, step in enumerate(state.plan, 1))
            messages.append({"role": "assistant", "content": f"Execution plan:\n{numbered}"})

        if state.results:
            blocks = []
            for r in state.results:
                status = "succeeded" if r.success else f"failed: {r.error}"
                blocks.append(f"[{r.agent_name}] {status}\nInput: {r.input}\nOutput: {r.output}")
            transcript = "\n\n".join(blocks)
            messages.append(
                {
                    "role": "user",
                    "content": f"Completed steps:\n{transcript}\n\nDecide the next step.",
                }
            )
        else:
            messages.append({"role": "user", "content": "Decide the first step."})
        return messages

    async def decide(self, state: MultiAgentState) -> SupervisorDecision:
        response = await self.client.generate_completion(self.build_context_messages(state))
        decision = self.parse_decision(response.content)
        logger.info("Supervisor decision: next=%s instruction=%r", decision.next, decision.instruction)
        return decision

    def parse_decision(self, content: str) -> SupervisorDecision:
        """Turn free-form supervisor output into a decision.  Never raises."""
        logger.debug("Supervisor raw response: %s", content)

        parsed = extract_json_object(content)
        if parsed is not None:
            target = parsed.get("next")
            if isinstance(target, str) and self._is_valid_target(target):
                return SupervisorDecision(
                    next=target,
                    instruction=_as_text(parsed.get("instruction")) or "",
                    reasoning=_as_text(parsed.get("reasoning")),
                )
        else:
            logger.debug("No JSON object in supervisor response")

        next_match = _NEXT_RE.search(content)
        if next_match and self._is_valid_target(next_match.group(1)):
            instruction_match = _INSTRUCTION_RE.search(content)
            return SupervisorDecision(
                next=next_match.group(1),
                instruction=instruction_match.group(1) if instruction_match else content,
                reasoning=content,
            )

        for worker in self.config.workers:
            if worker.name in content:
                return SupervisorDecision(
                    next=worker.name,
                    instruction=self._instruction_after(content, worker.name),
                    reasoning=f"matched worker name {worker.name} in text",
                )

        keyword_worker = self._match_by_keywords(content)
        if keyword_worker is not None:
            return SupervisorDecision(
                next=keyword_worker.name,
                instruction=content,
                reasoning=f"matched keywords for {keyword_worker.name}",
            )

        lowered = content.lower()
        if any(word in lowered for word in COMPLETION_WORDS):
            return SupervisorDecision(next=FINISH, instruction=content, reasoning="completion detected")

        if self.config.workers:
            first = self.config.workers[0]
            logger.warning("Unparseable supervisor response; routing to first worker %s", first.name)
            return SupervisorDecision(
                next=first.name,
                instruction=content,
                reasoning=f"could not parse decision, defaulting to {first.name}",
            )

        return SupervisorDecision(next=FINISH, instruction=content, reasoning="no workers configured")

    @staticmethod
    def _instruction_after(content: str, worker_name: str) -> str:
        _, _, tail = content.partition(worker_name)
        return tail.strip().lstrip(":- \t").strip()

    def _match_by_keywords(self, content: str) -> Optional[WorkerConfig]:
        lowered = content.lower()
        for worker in self.config.workers:
            name = worker.name.lower()
            for capability, keywords in KEYWORD_TABLE.items():
                if capability in name and any(k in lowered for k in keywords):
                    return worker

            for word in _DESCRIPTION_SPLIT_RE.split(worker.description.lower()):
                if len(word) > 1 and word in lowered:
                    return worker
        return None
