"""여행 대화 API."""

from fastapi import APIRouter, Depends, HTTPException, status

from app.api.dependencies import get_pipeline, require_service_secret
from app.core.errors import TurnInProgressError, TurnValidationError
from app.core.logger import get_logger
from app.schemas.chat import ChatRequest, ProcessingStatusResponse, TurnError, TurnResult
from app.services.pipeline import Pipeline

router = APIRouter(prefix="/api/v1", tags=["chat"])
logger = get_logger(__name__)

CHAT_RESPONSE_EXAMPLES = {
    "completed": {
        "summary": "턴 완료",
        "description": "여행지가 추가되고 일부 장소는 찾지 못한 경우",
        "value": {
            "reply": "เพิ่มสถานที่ให้แล้วค่ะ\n\nไม่พบสถานที่ต่อไปนี้: ร้านลับ",
            "trip_id": "5b1c3f0e-6f0a-4a63-9a57-3f0d7b5d7f10",
            "new_trip_id": "5b1c3f0e-6f0a-4a63-9a57-3f0d7b5d7f10",
            "state": "completed",
            "error": None,
            "retry_message": None,
            "added_count": 2,
            "failed_names": ["ร้านลับ"],
            "suggested_places": [],
            "suggest_login": False,
            "trip_ready": True,
            "destinations": [],
        },
    },
    "error": {
        "summary": "턴 실패",
        "description": "LLM 응답 시간 초과 등으로 턴이 실패한 경우",
        "value": {
            "reply": "ขออภัย ผู้ช่วย AI ตอบสนองช้าเกินไปหรือไม่สามารถตอบได้ กรุณาส่งข้อความอีกครั้ง",
            "trip_id": None,
            "new_trip_id": None,
            "state": "error",
            "error": {"category": "ai", "message": "assistant did not respond within 25s"},
            "retry_message": "อยากไปเชียงใหม่ 3 วัน",
            "added_count": 0,
            "failed_names": [],
            "suggested_places": [],
            "suggest_login": False,
            "trip_ready": False,
            "destinations": [],
        },
    },
}

CHAT_ERROR_EXAMPLES = {
    401: {
        "invalid_secret": {
            "summary": "서비스 시크릿 불일치",
            "description": "x-service-secret 값이 올바르지 않은 경우",
            "value": {"detail": "유효하지 않은 서비스 시크릿입니다."},
        },
    },
    409: {
        "turn_in_progress": {
            "summary": "이전 턴 처리 중",
            "description": "같은 세션의 이전 메시지가 아직 처리 중인 경우",
            "value": {"detail": "กรุณารอสักครู่ กำลังประมวลผลข้อความก่อนหน้าอยู่"},
        },
    },
}


@router.post(
    "/chat",
    response_model=TurnResult,
    dependencies=[Depends(require_service_secret)],
    responses={
        200: {
            "description": "대화 턴 결과",
            "content": {"application/json": {"examples": CHAT_RESPONSE_EXAMPLES}},
        },
        401: {
            "description": "인증 실패",
            "content": {"application/json": {"examples": CHAT_ERROR_EXAMPLES[401]}},
        },
        409: {
            "description": "턴 처리 중",
            "content": {"application/json": {"examples": CHAT_ERROR_EXAMPLES[409]}},
        },
    },
)
async def chat_turn(request: ChatRequest, pipeline: Pipeline = Depends(get_pipeline)) -> TurnResult:  # noqa: B008
    """사용자 메시지 한 건을 처리하고 턴 결과를 반환한다."""
    orchestrator = pipeline.orchestrator_for(request.session_id)
    logger.info("Chat turn requested: session_id=%s trip_id=%s", request.session_id, request.trip_id)
    try:
        return await orchestrator.handle_turn(
            request.trip_id,
            request.message,
            request.history,
            mode=request.mode,
            language=request.language,
        )
    except TurnInProgressError as exc:
        raise HTTPException(status_code=status.HTTP_409_CONFLICT, detail=exc.message) from exc
    except TurnValidationError as exc:
        raise HTTPException(status_code=status.HTTP_422_UNPROCESSABLE_ENTITY, detail=exc.message) from exc


@router.get(
    "/chat/{session_id}/state",
    response_model=ProcessingStatusResponse,
    dependencies=[Depends(require_service_secret)],
)
def chat_state(session_id: str, pipeline: Pipeline = Depends(get_pipeline)) -> ProcessingStatusResponse:  # noqa: B008
    """세션의 현재 처리 상태와 대화 기록을 반환한다."""
    orchestrator = pipeline.sessions.get(session_id)
    if orchestrator is None:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="세션을 찾을 수 없습니다.")

    machine = orchestrator.state_machine
    error = TurnError(category=machine.error.category, message=machine.error.message) if machine.error else None
    return ProcessingStatusResponse(
        state=machine.state,
        is_processing=machine.is_processing,
        error=error,
        transcript=list(orchestrator.transcript),
    )
