"""LangGraph assembly for the coordinator loop."""

from langgraph.graph import END, StateGraph

from task_ledger.coordinator.nodes import dispatch, finalize, select, verify
from task_ledger.coordinator.runtime import CoordinatorRuntime
from task_ledger.coordinator.state import CoordinatorState


def build_graph(runtime: CoordinatorRuntime, *, max_loops: int = 10):
    def _after_select(state: CoordinatorState) -> str:
        if state.get("outcome") == "blocked":
            return "halt"
        if state.get("eligible"):
            return "dispatch"
        return "verify"

    def _after_dispatch(state: CoordinatorState) -> str:
        if state.get("outcome"):
            return "halt"
        loop_budget = int(state.get("loop_budget", max_loops))
        if state.get("loop_count", 0) < loop_budget:
            return "again"
        return "verify"

    graph = StateGraph(CoordinatorState)

    graph.add_node("select", lambda state: select.run(state, runtime))
    graph.add_node("dispatch", lambda state: dispatch.run(state, runtime))
    graph.add_node("verify", lambda state: verify.run(state, runtime))
    graph.add_node("finalize", lambda state: finalize.run(state, runtime))

    graph.set_entry_point("select")
    graph.add_conditional_edges(
        "select",
        _after_select,
        {"dispatch": "dispatch", "verify": "verify", "halt": "finalize"},
    )
    graph.add_conditional_edges(
        "dispatch",
        _after_dispatch,
        {"again": "select", "verify": "verify", "halt": "finalize"},
    )
    graph.add_edge("verify", "finalize")
    graph.add_edge("finalize", END)

    return graph.compile()
