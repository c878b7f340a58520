"""
taskweave - agent orchestration core.

Two decision strategies (native tool calling and ReAct text parsing) behind one planner interface,
a bounded agent executor with streaming and human confirmation, and a supervisor/worker layer that
routes a task across several single-agent loops.
"""

__version__ = "0.1.0"
