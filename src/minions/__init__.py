"""Multi-agent task orchestration over a shared blackboard."""

__version__ = "0.1.0"
