"""자연어 계획 그래프 워크플로우 구성."""

from langgraph.graph import END, StateGraph

from app.graph.narrative.nodes import extract_places, generate_narrative
from app.graph.narrative.state import NarrativeState


def _route_after_narrative(state: NarrativeState) -> str:
    """계획 생성에 실패하면 추출을 건너뜁니다."""
    if state.get("error"):
        return END
    return "extract_places"


def _create_narrative_workflow() -> StateGraph:
    """자연어 계획 그래프 워크플로우를 생성합니다."""
    workflow = StateGraph(NarrativeState)

    workflow.add_node("generate_narrative", generate_narrative)
    workflow.add_node("extract_places", extract_places)

    workflow.set_entry_point("generate_narrative")
    workflow.add_conditional_edges("generate_narrative", _route_after_narrative, ["extract_places", END])
    workflow.add_edge("extract_places", END)

    return workflow


compiled_narrative_graph = _create_narrative_workflow().compile()
