"""Detached background work.

Route handlers commit a status transition, then ``submit`` the pipeline
coroutine and return without awaiting it. Jobs live only in this process:
there is no persistence and no retry, so a crash mid-job leaves the owning
row in its in-flight status until a user re-triggers the work.
"""
from __future__ import annotations

import asyncio
import logging
import uuid
from typing import Any, Callable, Coroutine, Dict, List, Optional

logger = logging.getLogger(__name__)


class Job:
    """Handle for one detached task. Production callers drop it; tests ``await job.wait()``."""

    def __init__(self, name: str, task: "asyncio.Task[Any]"):
        self.id = uuid.uuid4().hex
        self.name = name
        self._task = task

    def __repr__(self) -> str:
        state = "done" if self.done() else "running"
        return f"Job({self.name!r}, {state})"

    def done(self) -> bool:
        return self._task.done()

    def add_done_callback(self, callback: Callable[["Job"], None]) -> None:
        self._task.add_done_callback(lambda _task: callback(self))

    async def wait(self, timeout: Optional[float] = None) -> Any:
        """Await completion and return the coroutine's result (re-raising its error)."""
        return await asyncio.wait_for(asyncio.shield(self._task), timeout)

    def exception(self) -> Optional[BaseException]:
        if not self._task.done() or self._task.cancelled():
            return None
        return self._task.exception()


class JobRunner:
    def __init__(self):
        # Strong references; the event loop only keeps weak ones.
        self._jobs: Dict[str, Job] = {}

    def __len__(self) -> int:
        return len(self._jobs)

    @property
    def pending(self) -> List[Job]:
        return list(self._jobs.values())

    def submit(self, name: str, coro: Coroutine[Any, Any, Any]) -> Job:
        task = asyncio.get_running_loop().create_task(coro, name=name)
        job = Job(name, task)
        self._jobs[job.id] = job
        job.add_done_callback(self._finalize)
        logger.info(f"Job {job.id} started: {name}")
        return job

    def _finalize(self, job: Job) -> None:
        self._jobs.pop(job.id, None)
        if job._task.cancelled():
            logger.warning(f"Job {job.id} cancelled: {job.name}")
            return
        error = job.exception()
        if error is not None:
            logger.error(
                f"Job {job.id} crashed: {job.name}",
                exc_info=(type(error), error, error.__traceback__),
                extra={"job_id": job.id, "job_name": job.name},
            )
        else:
            logger.info(f"Job {job.id} finished: {job.name}")

    async def drain(self, timeout: Optional[float] = None) -> None:
        """Wait for every outstanding job, including jobs those jobs submit."""
        while self._jobs:
            tasks = [job._task for job in self._jobs.values()]
            _done, pending = await asyncio.wait(tasks, timeout=timeout)
            # Let done-callbacks unregister finished jobs before looping.
            await asyncio.sleep(0)
            if pending:
                logger.warning(f"{len(pending)} job(s) still running after {timeout}s")
                return

    async def cancel_all(self) -> None:
        for job in self.pending:
            job._task.cancel()
        await asyncio.gather(*(job._task for job in self.pending), return_exceptions=True)
