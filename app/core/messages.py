"""사용자에게 노출되는 응답 문구 (태국어/영어)."""

from __future__ import annotations

from app.schemas.enums import ErrorCategory

_GENERIC_ERROR = {
    "th": "ขออภัย เกิดข้อผิดพลาดในการประมวลผล กรุณาลองใหม่",
    "en": "Sorry, something went wrong while processing your request. Please try again.",
}

_ERROR_REPLIES: dict[ErrorCategory, dict[str, str]] = {
    ErrorCategory.AI: {
        "th": "ขออภัย ผู้ช่วย AI ตอบสนองช้าเกินไปหรือไม่สามารถตอบได้ กรุณาส่งข้อความอีกครั้ง",
        "en": "Sorry, the AI assistant did not respond in time. Please send your message again.",
    },
    ErrorCategory.NETWORK: {
        "th": "ขออภัย การเชื่อมต่อเครือข่ายมีปัญหา กรุณาตรวจสอบการเชื่อมต่อแล้วลองใหม่",
        "en": "Sorry, there was a network problem. Please check your connection and try again.",
    },
    ErrorCategory.DATABASE: {
        "th": "ขออภัย ไม่สามารถบันทึกข้อมูลทริปได้ กรุณาลองใหม่อีกครั้ง",
        "en": "Sorry, we could not save your trip. Please try again.",
    },
    ErrorCategory.VALIDATION: {
        "th": "ขออภัย ไม่เข้าใจคำขอนี้ กรุณาลองพิมพ์ใหม่อีกครั้งด้วยคำอื่น",
        "en": "Sorry, I could not understand that request. Please try rephrasing it.",
    },
}

_BUSY_REPLY = {
    "th": "กรุณารอสักครู่ กำลังประมวลผลข้อความก่อนหน้าอยู่",
    "en": "Please wait, the previous message is still being processed.",
}

_PARTIAL_FAILURE = {
    "th": "ไม่พบสถานที่ต่อไปนี้: {names}",
    "en": "Could not find these places: {names}",
}

_DEFAULT_TRIP_TITLE = {
    "th": "ทริปใหม่",
    "en": "New trip",
}


def _pick(table: dict[str, str], language: str) -> str:
    return table.get((language or "").lower(), table["en"])


def error_reply(category: ErrorCategory | None, language: str) -> str:
    """오류 분류별 재시도 안내 문구를 반환합니다."""
    if category is None:
        return _pick(_GENERIC_ERROR, language)
    return _pick(_ERROR_REPLIES.get(category, _GENERIC_ERROR), language)


def busy_reply(language: str) -> str:
    """처리 중 재전송 거절 문구."""
    return _pick(_BUSY_REPLY, language)


def qualify_reply(reply: str, failed_names: list[str], language: str) -> str:
    """일부 장소 해석 실패 시 응답 끝에 실패 목록을 덧붙입니다."""
    if not failed_names:
        return reply
    notice = _pick(_PARTIAL_FAILURE, language).format(names=", ".join(failed_names))
    return f"{reply}\n\n{notice}" if reply else notice


def default_trip_title(language: str) -> str:
    """새 여행 기본 제목."""
    return _pick(_DEFAULT_TRIP_TITLE, language)
