"""퀴즈 단위 임계 구역

같은 프로세스 안에서는 퀴즈 ID별 asyncio.Lock으로 직렬화하고,
프로세스 간에는 서비스 계층의 SELECT ... FOR UPDATE가 커밋까지 행을 잡아둡니다.
스냅샷은 편집/게시 작업이 이미 잡은 락 안에서 다시 호출되므로 같은 태스크의 재진입을 허용합니다.
"""
import asyncio
from collections.abc import AsyncIterator
from contextlib import asynccontextmanager


class _ReentrantLock:
    def __init__(self) -> None:
        self._lock = asyncio.Lock()
        self._owner: asyncio.Task | None = None
        self._depth = 0
        self.waiters = 0

    async def acquire(self) -> None:
        task = asyncio.current_task()
        if self._owner is task and task is not None:
            self._depth += 1
            return
        self.waiters += 1
        try:
            await self._lock.acquire()
        finally:
            self.waiters -= 1
        self._owner = task
        self._depth = 1

    def release(self) -> None:
        self._depth -= 1
        if self._depth == 0:
            self._owner = None
            self._lock.release()

    @property
    def idle(self) -> bool:
        return self._owner is None and self.waiters == 0


_locks: dict[int, _ReentrantLock] = {}


@asynccontextmanager
async def quiz_lock(quiz_id: int) -> AsyncIterator[None]:
    lock = _locks.get(quiz_id)
    if lock is None:
        lock = _locks[quiz_id] = _ReentrantLock()
    await lock.acquire()
    try:
        yield
    finally:
        lock.release()
        # 대기자가 없으면 정리
        if lock.idle and _locks.get(quiz_id) is lock:
            del _locks[quiz_id]
