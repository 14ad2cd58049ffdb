"""
Task/progress reporter

The sync engine starts one task per long-running network phase (a search,
each playlist-collection fetch, a favorites edit, a playlist mutation) and
finishes it when the phase's reply has been handled. A front end can list the
active tasks to show progress; the logout drain awaits specific tasks through
wait_finished().

Anything exposing begin/finish/is_active/wait_finished can be passed to the
service in place of TaskManager.
"""

import asyncio
from typing import Dict, List, Optional, Tuple

from ..utils.logger import get_logger


class TaskManager:
    """In-memory task table"""

    def __init__(self):
        self.logger = get_logger(__name__)
        self._next_id = 1
        self._tasks: Dict[int, str] = {}
        self._waiters: Dict[int, List[asyncio.Future]] = {}

    def begin(self, label: str) -> int:
        """
        Start a task

        Args:
            label: Human-readable description shown by front ends

        Returns:
            Task id (never 0, so 0 can mean "no task")
        """
        task_id = self._next_id
        self._next_id += 1
        self._tasks[task_id] = label
        self.logger.debug(f"Task {task_id} started: {label}")
        return task_id

    def finish(self, task_id: Optional[int]) -> None:
        """Mark a task finished; unknown or already finished ids are ignored"""
        if not task_id or task_id not in self._tasks:
            return
        label = self._tasks.pop(task_id)
        self.logger.debug(f"Task {task_id} finished: {label}")

        for waiter in self._waiters.pop(task_id, []):
            if not waiter.done():
                waiter.set_result(task_id)

    def is_active(self, task_id: Optional[int]) -> bool:
        return bool(task_id) and task_id in self._tasks

    def active_tasks(self) -> List[Tuple[int, str]]:
        return sorted(self._tasks.items())

    async def wait_finished(self, *task_ids: Optional[int]) -> None:
        """Wait until every given task is finished (ids of 0/None are skipped)"""
        loop = asyncio.get_running_loop()
        waiters = []
        for task_id in task_ids:
            if not self.is_active(task_id):
                continue
            waiter = loop.create_future()
            self._waiters.setdefault(task_id, []).append(waiter)
            waiters.append(waiter)

        if waiters:
            await asyncio.gather(*waiters)

    async def wait_idle(self) -> None:
        """Wait until no task at all is active"""
        while self._tasks:
            await self.wait_finished(*list(self._tasks))
