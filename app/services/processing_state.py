"""대화 턴 처리 상태 머신.

상태 전이는 오케스트레이터만 수행하고 UI는 `state`를 읽거나 리스너로 변화를 구독한다.
"""

from __future__ import annotations

from collections.abc import Callable
from dataclasses import dataclass

from app.core.errors import InvalidTransitionError
from app.core.logger import get_logger
from app.schemas.enums import ErrorCategory, ProcessingState

logger = get_logger(__name__)

StateListener = Callable[[ProcessingState, ProcessingState], None]

_ALLOWED_TRANSITIONS: dict[ProcessingState, frozenset[ProcessingState]] = {
    ProcessingState.IDLE: frozenset({ProcessingState.ANALYZING}),
    ProcessingState.ANALYZING: frozenset(
        {ProcessingState.PLANNING, ProcessingState.ADDING_DESTINATIONS, ProcessingState.COMPLETED}
    ),
    ProcessingState.PLANNING: frozenset({ProcessingState.ADDING_DESTINATIONS, ProcessingState.COMPLETED}),
    ProcessingState.ADDING_DESTINATIONS: frozenset({ProcessingState.COMPLETED}),
    ProcessingState.COMPLETED: frozenset({ProcessingState.IDLE}),
    ProcessingState.ERROR: frozenset({ProcessingState.IDLE}),
}

_BUSY_STATES = frozenset({ProcessingState.ANALYZING, ProcessingState.PLANNING, ProcessingState.ADDING_DESTINATIONS})


@dataclass(frozen=True, slots=True)
class ProcessingError:
    """error 상태에 실리는 오류 정보."""

    category: ErrorCategory
    message: str


class ProcessingStateMachine:
    """턴 단위 처리 상태. 여행 간에 공유하지 않는다."""

    def __init__(self) -> None:
        self._state = ProcessingState.IDLE
        self._error: ProcessingError | None = None
        self._listeners: list[StateListener] = []
        self._turn_history: list[ProcessingState] = [ProcessingState.IDLE]

    @property
    def state(self) -> ProcessingState:
        return self._state

    @property
    def error(self) -> ProcessingError | None:
        return self._error

    @property
    def is_processing(self) -> bool:
        """턴이 진행 중인지 여부. UI는 이 값이 참인 동안 입력을 막는다."""
        return self._state in _BUSY_STATES

    @property
    def turn_history(self) -> list[ProcessingState]:
        """현재(또는 마지막) 턴에서 거친 상태 목록."""
        return list(self._turn_history)

    def add_listener(self, listener: StateListener) -> Callable[[], None]:
        """상태 변경 리스너를 등록하고 해제 함수를 반환합니다."""
        self._listeners.append(listener)

        def _remove() -> None:
            if listener in self._listeners:
                self._listeners.remove(listener)

        return _remove

    def _set(self, target: ProcessingState) -> None:
        previous = self._state
        self._state = target
        self._turn_history.append(target)
        logger.debug("Processing state: %s -> %s", previous.value, target.value)
        for listener in list(self._listeners):
            try:
                listener(previous, target)
            except Exception:
                logger.exception("Processing state listener failed")

    def transition(self, target: ProcessingState) -> None:
        """허용된 전이만 수행합니다. error 전이는 `fail`을 사용합니다."""
        if target == ProcessingState.ERROR:
            raise InvalidTransitionError("use fail() to enter the error state")
        if target not in _ALLOWED_TRANSITIONS[self._state]:
            raise InvalidTransitionError(f"{self._state.value} -> {target.value} is not allowed")
        self._set(target)

    def begin_turn(self) -> None:
        """새 턴 시작. 직전 턴의 종료 상태에서 idle을 거쳐 analyzing으로 간다."""
        if self.is_processing:
            raise InvalidTransitionError(f"turn already in progress ({self._state.value})")
        if self._state != ProcessingState.IDLE:
            self._set(ProcessingState.IDLE)
        self._error = None
        self._turn_history = [ProcessingState.IDLE]
        self._set(ProcessingState.ANALYZING)

    def fail(self, category: ErrorCategory, message: str) -> None:
        """어느 상태에서든 error로 전이합니다."""
        self._error = ProcessingError(category=category, message=message)
        self._set(ProcessingState.ERROR)

    def reset(self) -> None:
        """종료 상태에서 idle로 돌립니다."""
        if self._state == ProcessingState.IDLE:
            return
        self.transition(ProcessingState.IDLE)
        self._error = None
