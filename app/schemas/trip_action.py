"""LLM 출력용 여행 액션 스키마와 검증기.

LLM 응답은 신뢰할 수 없는 입력이므로 `validate_turn_result`는 예외를 던지지 않고
`AiTurnResult` 또는 `SchemaError` 값을 반환한다. 검증은 JSON 모드의 strict 규칙으로
수행되어 문자열 숫자 같은 암묵적 변환을 허용하지 않는다.
"""

from __future__ import annotations

import json
from dataclasses import dataclass, field
from typing import Annotated, Any, Literal, Union

from pydantic import BaseModel, ConfigDict, Field, ValidationError, field_validator

from app.core.json_utils import extract_json_object
from app.schemas.enums import ActionType, DestinationPriority, PlaceType, TripModificationType

_ACTION_TAGS = frozenset(item.value for item in ActionType)
_ROOT_PATH = "$"


class _ActionModel(BaseModel):
    model_config = ConfigDict(extra="ignore", str_strip_whitespace=True, populate_by_name=True)


class DestinationRequest(_ActionModel):
    """ADD_DESTINATIONS에 포함되는 개별 장소 요청."""

    name: str = Field(..., min_length=1, description="장소 이름")
    hint_address: str | None = Field(default=None, alias="hintAddress", description="주소 힌트")
    min_hours: float | None = Field(default=None, alias="minHours", gt=0, description="최소 체류 시간(시간)")
    place_type: PlaceType | None = Field(default=None, description="장소 유형")


class DestinationOrderEntry(_ActionModel):
    """REORDER_DESTINATIONS의 목표 위치."""

    name: str = Field(..., min_length=1)
    day: int = Field(..., ge=1)
    order_index: int = Field(..., ge=1)


class TripModification(_ActionModel):
    """MODIFY_TRIP 변경 내용."""

    new_total_days: int = Field(..., ge=1)
    extend_to_province: str | None = None
    modification_type: TripModificationType | None = None


class PlaceRecommendation(_ActionModel):
    """RECOMMEND_PLACES의 추천 항목."""

    name: str = Field(..., min_length=1)
    type: PlaceType
    description: str | None = None


class PersonalInfoRequest(_ActionModel):
    """ASK_PERSONAL_INFO로 요청하는 정보 항목."""

    travel_companions: str | None = None
    budget_range: str | None = None
    travel_style: str | None = None


class AddDestinationsAction(_ActionModel):
    action: Literal["ADD_DESTINATIONS"]
    location_context: str | None = None
    day: int | None = Field(default=None, ge=1)
    destinations: list[DestinationRequest] = Field(..., min_length=1)


class RemoveDestinationsAction(_ActionModel):
    action: Literal["REMOVE_DESTINATIONS"]
    destination_names: list[Annotated[str, Field(min_length=1)]] | None = Field(default=None, min_length=1)


class ReorderDestinationsAction(_ActionModel):
    action: Literal["REORDER_DESTINATIONS"]
    destination_order: list[DestinationOrderEntry] = Field(..., min_length=1)


class MoveDestinationAction(_ActionModel):
    action: Literal["MOVE_DESTINATION"]
    destination_name: str = Field(..., min_length=1)
    target_day: int = Field(..., ge=1)
    target_position: int | None = Field(default=None, ge=1)


class UpdateTripInfoAction(_ActionModel):
    action: Literal["UPDATE_TRIP_INFO"]
    days: int | None = Field(default=None, ge=1)
    start_date: str | None = None
    budget_min: float | None = None
    budget_max: float | None = None


class ModifyTripAction(_ActionModel):
    action: Literal["MODIFY_TRIP"]
    trip_modification: TripModification


class RecommendPlacesAction(_ActionModel):
    action: Literal["RECOMMEND_PLACES"]
    location_context: str = Field(..., min_length=1)
    place_types: list[PlaceType] = Field(..., min_length=1)
    recommendations: list[PlaceRecommendation] | None = None


class AskPersonalInfoAction(_ActionModel):
    action: Literal["ASK_PERSONAL_INFO"]
    personal_info: PersonalInfoRequest | None = None


class NoAction(_ActionModel):
    action: Literal["NO_ACTION"]


TripAction = Annotated[
    Union[
        AddDestinationsAction,
        RemoveDestinationsAction,
        ReorderDestinationsAction,
        MoveDestinationAction,
        UpdateTripInfoAction,
        ModifyTripAction,
        RecommendPlacesAction,
        AskPersonalInfoAction,
        NoAction,
    ],
    Field(discriminator="action"),
]


class AiTurnResult(BaseModel):
    """LLM 한 턴의 검증된 결과."""

    model_config = ConfigDict(extra="ignore")

    reply: str = Field(..., description="사용자에게 보여줄 응답")
    actions: list[TripAction] = Field(default_factory=list, description="실행할 액션 목록")
    suggest_login: bool | None = Field(default=None, description="로그인 권유 여부")

    @field_validator("actions", mode="before")
    @classmethod
    def _null_actions_to_empty(cls, value: Any) -> Any:
        return [] if value is None else value


class DestinationDetail(BaseModel):
    """저장 전 여행지 상세 값 검증 모델."""

    model_config = ConfigDict(extra="ignore", str_strip_whitespace=True)

    name: str = Field(..., min_length=1)
    name_en: str | None = None
    description: str | None = None
    latitude: float | None = Field(default=None, ge=-90, le=90)
    longitude: float | None = Field(default=None, ge=-180, le=180)
    rating: float | None = Field(default=None, ge=0, le=5)
    visit_duration: int | None = Field(default=None, ge=15, le=480, description="체류 시간(분)")
    estimated_cost: float | None = Field(default=None, ge=0)
    place_types: list[str] | None = None
    place_type: PlaceType | None = None
    priority: DestinationPriority | None = None
    hint_address: str | None = None


@dataclass(frozen=True, slots=True)
class SchemaError:
    """검증 실패 결과. `path`는 점 표기 경로(예: `actions.0.destinations.1.name`)."""

    path: str
    message: str
    errors: tuple[dict[str, Any], ...] = field(default_factory=tuple)


def _format_path(loc: tuple[Any, ...]) -> str:
    # 판별 유니온은 loc에 태그 이름을 끼워 넣으므로 제외한다.
    parts = [str(item) for item in loc if not (isinstance(item, str) and item in _ACTION_TAGS)]
    return ".".join(parts) if parts else _ROOT_PATH


def _schema_error_from(exc: ValidationError) -> SchemaError:
    details = exc.errors(include_url=False, include_input=False)
    first = details[0] if details else {"loc": (), "msg": str(exc)}
    return SchemaError(
        path=_format_path(tuple(first.get("loc", ()))),
        message=str(first.get("msg", "invalid value")),
        errors=tuple({"path": _format_path(tuple(item["loc"])), "message": item["msg"]} for item in details),
    )


def _coerce_payload(raw: object) -> str | SchemaError:
    if isinstance(raw, bytes):
        raw = raw.decode("utf-8", errors="replace")
    if isinstance(raw, str):
        parsed = extract_json_object(raw)
        if parsed is None:
            return SchemaError(path=_ROOT_PATH, message="response is not a JSON object")
        raw = parsed
    if not isinstance(raw, dict):
        return SchemaError(path=_ROOT_PATH, message=f"expected an object, got {type(raw).__name__}")
    try:
        return json.dumps(raw, ensure_ascii=False)
    except (TypeError, ValueError) as exc:
        return SchemaError(path=_ROOT_PATH, message=f"payload is not JSON serializable: {exc}")
    except RecursionError:
        return SchemaError(path=_ROOT_PATH, message="payload is nested too deeply")


def validate_turn_result(raw: object) -> AiTurnResult | SchemaError:
    """LLM 원시 응답을 `AiTurnResult`로 검증합니다. 실패는 `SchemaError` 값으로 반환됩니다."""
    payload = _coerce_payload(raw)
    if isinstance(payload, SchemaError):
        return payload
    try:
        return AiTurnResult.model_validate_json(payload, strict=True)
    except ValidationError as exc:
        return _schema_error_from(exc)


def validate_destination_detail(raw: object) -> DestinationDetail | SchemaError:
    """여행지 상세 payload를 검증합니다."""
    payload = _coerce_payload(raw)
    if isinstance(payload, SchemaError):
        return payload
    try:
        return DestinationDetail.model_validate_json(payload, strict=True)
    except ValidationError as exc:
        return _schema_error_from(exc)
