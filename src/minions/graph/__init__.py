from minions.graph.state import RunState, initial_state
from minions.graph.workflow import build_graph

__all__ = ["RunState", "build_graph", "initial_state"]
