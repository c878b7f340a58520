"""
Data models for the supervisor / worker layer.

A supervisor repeatedly picks the next worker (or :data:`FINISH`) from the task and the results
gathered so far; every worker run is recorded as an :class:`AgentResult`.
"""

from __future__ import annotations

from typing import (
    Annotated,
    Any,
    Awaitable,
    Callable,
    Dict,
    List,
    Literal,
    Optional,
    Union,
)

from pydantic import (
    BaseModel,
    ConfigDict,
    Field,
)

from taskweave.config import settings
from taskweave.core.schema import AgentStep

FINISH = "FINISH"


class WorkerConfig(BaseModel):
    """Identity and capability description of a worker, used for routing only."""

    name: str
    description: str
    system_prompt: Optional[str] = None


class AgentResult(BaseModel):
    agent_name: str
    input: str
    output: str
    steps: List[AgentStep] = Field(default_factory=list)
    duration_ms: int = 0
    success: bool
    error: Optional[str] = None


class SupervisorDecision(BaseModel):
    next: str
    instruction: str = ""
    reasoning: Optional[str] = None

    @property
    def is_finish(self) -> bool:
        return self.next == FINISH


class QAPair(BaseModel):
    question: str
    answer: str
    agent: Optional[str] = None
    success: Optional[bool] = None


class MultiAgentState(BaseModel):
    """Mutable state shared between the supervisor and the executor during one run."""

    task: str
    messages: List[Any] = Field(default_factory=list)
    plan: Optional[List[str]] = None
    current_step: Optional[int] = None
    results: List[AgentResult] = Field(default_factory=list)
    final_output: Optional[str] = None
    metadata: Dict[str, Any] = Field(default_factory=dict)


class MultiAgentResult(BaseModel):
    output: str
    qa_pairs: List[QAPair] = Field(default_factory=list)
    results: List[AgentResult] = Field(default_factory=list)
    iterations: int = 0
    total_duration_ms: int = 0
    agent_sequence: List[str] = Field(default_factory=list)


class SupervisorConfig(BaseModel):
    workers: List[WorkerConfig] = Field(default_factory=list)
    system_prompt: Optional[str] = None
    max_iterations: int = Field(default_factory=lambda: settings.SUPERVISOR_MAX_ITERATIONS)
    enable_planning: bool = False


AgentStartCallback = Callable[[str, str], Union[None, Awaitable[None]]]
AgentEndCallback = Callable[[AgentResult], Union[None, Awaitable[None]]]
DecisionCallback = Callable[[SupervisorDecision], Union[None, Awaitable[None]]]


class MultiAgentExecutorConfig(BaseModel):
    model_config = ConfigDict(arbitrary_types_allowed=True)

    max_iterations: int = Field(default_factory=lambda: settings.SUPERVISOR_MAX_ITERATIONS)
    agent_timeout: float = Field(default_factory=lambda: settings.AGENT_TIMEOUT)
    worker_max_iterations: int = Field(default_factory=lambda: settings.WORKER_MAX_ITERATIONS)
    on_agent_start: Optional[AgentStartCallback] = None
    on_agent_end: Optional[AgentEndCallback] = None
    on_decision: Optional[DecisionCallback] = None


# ---------------------------------------------------------------------------
# Stream events
# ---------------------------------------------------------------------------
class PlanningEvent(BaseModel):
    type: Literal["planning"] = "planning"
    plan: List[str]


class DecisionEvent(BaseModel):
    type: Literal["decision"] = "decision"
    decision: SupervisorDecision


class AgentStartEvent(BaseModel):
    type: Literal["agent_start"] = "agent_start"
    agent_name: str
    input: str


class AgentEndEvent(BaseModel):
    type: Literal["agent_end"] = "agent_end"
    result: AgentResult


class MultiAgentFinishEvent(BaseModel):
    type: Literal["finish"] = "finish"
    output: str


MultiAgentStreamEvent = Annotated[
    Union[
        PlanningEvent,
        DecisionEvent,
        AgentStartEvent,
        AgentEndEvent,
        MultiAgentFinishEvent,
    ],
    Field(discriminator="type"),
]
