"""
Stage pipeline.

Drives an ordered list of (req, res, next) stages. A stage hands off by calling
next(); an error passed to next(), or raised before the hand-off, switches to
the (error, req, res, next) error stages. Each stage runs in its own task, so
the ContextVar bindings it makes stay local to it.
"""

import asyncio
import inspect
import logging
from dataclasses import dataclass
from enum import Enum
from typing import Any, Callable, Optional, Sequence

from .http import AppRequest, AppResponse, TEXT_CONTENT_TYPE

logger = logging.getLogger(__name__)

Next = Callable[..., None]
Stage = Callable[..., Any]


class Outcome(Enum):
    # The response was committed.
    FINISHED = "finished"
    # Every stage handed off without committing a response.
    PASSED = "passed"


@dataclass
class _Handoff:
    error: Optional[BaseException] = None


async def _call(stage: Stage, *args: Any) -> None:
    result = stage(*args)
    if inspect.isawaitable(result):
        await result


def _consume(task: "asyncio.Future[Any]") -> None:
    """Retrieve the outcome of a stage that kept running after its hand-off."""
    if task.cancelled():
        return
    error = task.exception()
    if error is not None:
        logger.debug("Stage raised after handing off", exc_info=error)


class Pipeline:
    def __init__(self, stages: Sequence[Stage], error_stages: Sequence[Stage]):
        self.stages = tuple(stages)
        self.error_stages = tuple(error_stages)

    async def run(
        self, req: AppRequest, res: AppResponse, error: Optional[BaseException] = None
    ) -> Outcome:
        if error is None:
            for stage in self.stages:
                handoff = await self._invoke(stage, res, req, res)
                if handoff is None:
                    return Outcome.FINISHED
                if handoff.error is not None:
                    error = handoff.error
                    break
            else:
                return Outcome.PASSED

        await self.handle_error(error, req, res)
        return Outcome.FINISHED

    async def handle_error(self, error: BaseException, req: AppRequest, res: AppResponse) -> None:
        for stage in self.error_stages:
            handoff = await self._invoke(stage, res, error, req, res)
            if handoff is None:
                return
            # next() forwards the current error unchanged; next(err) replaces it.
            if handoff.error is not None:
                error = handoff.error

        if not res.headers_sent:
            logger.error("Error chain exhausted without a response", exc_info=error)
            res.status(500).set_header("content-type", TEXT_CONTENT_TYPE)
            res.send("Internal server error")

    async def _invoke(self, stage: Stage, res: AppResponse, *args: Any) -> Optional[_Handoff]:
        """
        Run one stage until it hands off or the response is committed.

        Returns the hand-off, or None when the stage committed the response.
        """
        loop = asyncio.get_running_loop()
        handoff: asyncio.Future = loop.create_future()

        def next_(error: Optional[BaseException] = None) -> None:
            if not handoff.done():
                handoff.set_result(_Handoff(error))

        task = asyncio.ensure_future(_call(stage, *args, next_))
        finished = asyncio.ensure_future(res.wait_finished())
        pending = {handoff, task, finished}
        try:
            while True:
                await asyncio.wait(pending, return_when=asyncio.FIRST_COMPLETED)
                if handoff.done():
                    return handoff.result()
                if finished.done():
                    # Post-commit work of the stage keeps running detached.
                    return None
                if task.done():
                    pending.discard(task)
                    if task.cancelled():
                        return _Handoff(asyncio.CancelledError())
                    error = task.exception()
                    if error is not None:
                        return _Handoff(error)
                    # Returned without next() or a response: wait for a late next().
        finally:
            if not finished.done():
                finished.cancel()
            if task.done():
                _consume(task)
            else:
                task.add_done_callback(_consume)
