"""자연어 계획 그래프 상태 정의."""

from typing import TypedDict

from app.schemas.chat import AssistantRequest
from app.schemas.narrative import ExtractedPlace, NarrativeMeta


class NarrativeState(TypedDict, total=False):
    """자연어 계획 그래프 상태.

    Keys:
        request: LLM 협력자 호출 입력
        narrative: 1단계에서 생성한 자연어 여행 계획
        location_context: 추출 결과의 대표 지역
        extracted_places: 2단계에서 추출한 장소 후보
        meta: 추출 메타데이터
        error: 오류 메시지
    """

    # Input
    request: AssistantRequest

    # Output
    narrative: str
    location_context: str | None
    extracted_places: list[ExtractedPlace]
    meta: NarrativeMeta
    error: str | None
