"""프로세스 내 저장소 변경 알림 피드.

저장소는 커밋 후 `ChangeFeed.publish`로 행 단위 변경을 알린다. 구독자는 테이블과
행 필터(`trip_id = X` 등)로 채널을 열고, 채널마다 독립된 큐와 전달 태스크를 가진다.
전달은 최소 1회이며, 대기 중인 알림은 한 번의 핸들러 호출로 묶여 전달된다.
"""

from __future__ import annotations

import asyncio
import contextlib
from collections.abc import Awaitable, Callable
from dataclasses import dataclass
from typing import Any

from app.core.logger import get_logger
from app.schemas.enums import ChangeEventType

logger = get_logger(__name__)


@dataclass(frozen=True, slots=True)
class ChangeEvent:
    """행 단위 변경 알림."""

    table: str
    event_type: ChangeEventType
    new: dict[str, Any] | None = None
    old: dict[str, Any] | None = None

    def row_value(self, column: str) -> Any:
        row = self.new if self.new is not None else self.old
        return (row or {}).get(column)


ChangeBatchHandler = Callable[[list[ChangeEvent]], Awaitable[None]]


class ChangeChannel:
    """테이블 + 행 필터로 걸러진 단일 변경 스트림."""

    def __init__(
        self,
        name: str,
        *,
        table: str,
        filter_column: str,
        filter_value: Any,
        handler: ChangeBatchHandler,
    ) -> None:
        self.name = name
        self.table = table
        self.filter_column = filter_column
        self.filter_value = filter_value
        self._handler = handler
        self._queue: asyncio.Queue[ChangeEvent] = asyncio.Queue()
        self._task: asyncio.Task | None = None

    @property
    def is_open(self) -> bool:
        return self._task is not None and not self._task.done()

    def matches(self, event: ChangeEvent) -> bool:
        return event.table == self.table and event.row_value(self.filter_column) == self.filter_value

    def start(self) -> None:
        if self._task is None:
            self._task = asyncio.get_running_loop().create_task(self._run(), name=f"change-channel:{self.name}")

    def offer(self, event: ChangeEvent) -> None:
        self._queue.put_nowait(event)

    async def _run(self) -> None:
        while True:
            batch = [await self._queue.get()]
            while not self._queue.empty():
                batch.append(self._queue.get_nowait())
            try:
                await self._handler(batch)
            except asyncio.CancelledError:
                raise
            except Exception:
                logger.exception("Change handler failed: channel=%s events=%d", self.name, len(batch))
            finally:
                for _ in batch:
                    self._queue.task_done()

    async def join(self) -> None:
        await self._queue.join()

    async def close(self) -> None:
        task, self._task = self._task, None
        if task is None:
            return
        task.cancel()
        with contextlib.suppress(asyncio.CancelledError):
            await task


class ChangeFeed:
    """채널 레지스트리와 발행 진입점."""

    def __init__(self) -> None:
        self._channels: dict[str, ChangeChannel] = {}

    @property
    def channel_names(self) -> list[str]:
        return sorted(self._channels)

    def open_channel(
        self,
        name: str,
        *,
        table: str,
        filter_column: str,
        filter_value: Any,
        handler: ChangeBatchHandler,
    ) -> ChangeChannel:
        """채널을 열고 전달 태스크를 시작합니다. 같은 이름의 채널이 있으면 ValueError."""
        if name in self._channels:
            raise ValueError(f"channel already open: {name}")
        channel = ChangeChannel(
            name,
            table=table,
            filter_column=filter_column,
            filter_value=filter_value,
            handler=handler,
        )
        self._channels[name] = channel
        channel.start()
        return channel

    async def close_channel(self, name: str) -> bool:
        channel = self._channels.pop(name, None)
        if channel is None:
            return False
        await channel.close()
        return True

    def publish(self, event: ChangeEvent) -> int:
        """일치하는 모든 채널 큐에 알림을 넣고, 전달 대상 채널 수를 반환합니다."""
        delivered = 0
        for channel in list(self._channels.values()):
            if channel.matches(event):
                channel.offer(event)
                delivered += 1
        return delivered

    async def join(self) -> None:
        """현재 큐에 쌓인 알림이 모두 처리될 때까지 기다립니다."""
        for channel in list(self._channels.values()):
            await channel.join()

    async def close(self) -> None:
        for name in list(self._channels):
            await self.close_channel(name)
