"""Stop conditions: predicates over iteration count and step history that end a run early."""

from abc import (
    ABC,
    abstractmethod,
)
from typing import Sequence

from taskweave.core.parsing import stable_json
from taskweave.core.schema import AgentStep


class StopCondition(ABC):
    """Checked before every planning call."""

    @abstractmethod
    def should_stop(self, steps: Sequence[AgentStep], iteration: int) -> bool: ...

    @property
    @abstractmethod
    def reason(self) -> str: ...


class MaxIterationsStop(StopCondition):
    """Fires once *max_iterations* planning calls have been made."""

    def __init__(self, max_iterations: int) -> None:
        self.max_iterations = max_iterations

    def should_stop(self, steps: Sequence[AgentStep], iteration: int) -> bool:
        # iteration is 1-based and incremented before the check
        return iteration > self.max_iterations

    @property
    def reason(self) -> str:
        return f"reached max iterations ({self.max_iterations})"


class RepeatedActionStop(StopCondition):
    """Fires when the last *threshold* steps used the same tool with the same input."""

    def __init__(self, threshold: int = 3) -> None:
        self.threshold = threshold

    def should_stop(self, steps: Sequence[AgentStep], iteration: int) -> bool:
        if self.threshold < 1 or len(steps) < self.threshold:
            return False
        keys = {
            f"{s.action.tool_name}:{stable_json(s.action.tool_input)}"
            for s in steps[-self.threshold :]
        }
        return len(keys) == 1

    @property
    def reason(self) -> str:
        return f"detected repeated action ({self.threshold} times)"
