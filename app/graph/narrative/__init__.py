"""자연어 계획 → 장소 추출 그래프."""

from app.graph.narrative.workflow import compiled_narrative_graph

__all__ = ["compiled_narrative_graph"]
