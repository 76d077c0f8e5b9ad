"""파이프라인 전반에서 공유하는 열거형."""

from enum import StrEnum


class ActionType(StrEnum):
    """LLM이 반환할 수 있는 여행 액션 종류."""

    ADD_DESTINATIONS = "ADD_DESTINATIONS"
    REMOVE_DESTINATIONS = "REMOVE_DESTINATIONS"
    REORDER_DESTINATIONS = "REORDER_DESTINATIONS"
    MOVE_DESTINATION = "MOVE_DESTINATION"
    UPDATE_TRIP_INFO = "UPDATE_TRIP_INFO"
    MODIFY_TRIP = "MODIFY_TRIP"
    RECOMMEND_PLACES = "RECOMMEND_PLACES"
    ASK_PERSONAL_INFO = "ASK_PERSONAL_INFO"
    NO_ACTION = "NO_ACTION"


class PlaceType(StrEnum):
    """여행지 분류."""

    TOURIST_ATTRACTION = "tourist_attraction"
    LODGING = "lodging"
    RESTAURANT = "restaurant"


class DestinationPriority(StrEnum):
    """여행지 우선순위."""

    HIGH = "high"
    MEDIUM = "medium"
    LOW = "low"


class TripModificationType(StrEnum):
    """MODIFY_TRIP 변경 유형."""

    ADD_DAYS = "ADD_DAYS"
    REMOVE_DAYS = "REMOVE_DAYS"
    CHANGE_DATES = "CHANGE_DATES"


class TripStatus(StrEnum):
    """여행 상태."""

    PLANNING = "planning"
    CONFIRMED = "confirmed"
    COMPLETED = "completed"
    CANCELLED = "cancelled"


class ProcessingState(StrEnum):
    """대화 턴 처리 단계. UI는 이 값만 읽는다."""

    IDLE = "idle"
    ANALYZING = "analyzing"
    PLANNING = "planning"
    ADDING_DESTINATIONS = "adding_destinations"
    COMPLETED = "completed"
    ERROR = "error"


class ErrorCategory(StrEnum):
    """사용자에게 노출되는 오류 분류."""

    NETWORK = "network"
    AI = "ai"
    DATABASE = "database"
    VALIDATION = "validation"


class ResolutionErrorKind(StrEnum):
    """장소 해석 실패 사유."""

    NOT_FOUND = "NOT_FOUND"
    PROVIDER_ERROR = "PROVIDER_ERROR"
    INVALID_QUERY = "INVALID_QUERY"


class ChangeEventType(StrEnum):
    """저장소 변경 알림 이벤트 종류."""

    INSERT = "INSERT"
    UPDATE = "UPDATE"
    DELETE = "DELETE"


class ChatRole(StrEnum):
    """대화 메시지 역할."""

    USER = "user"
    ASSISTANT = "assistant"
    SYSTEM = "system"


class AssistantMode(StrEnum):
    """LLM 호출 모드."""

    STRUCTURED = "structured"
    NARRATIVE = "narrative"
    EXTRACTION = "extraction"
