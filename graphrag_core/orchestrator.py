# /graphrag_core/orchestrator.py

import asyncio
from enum import Enum
from typing import Awaitable, Callable, Dict, List, Optional, Tuple, TypeVar, Union
from pydantic import BaseModel, Field

from graphrag_core.errors import Failure, GraphRagError, QueryValidationError
from graphrag_core.logger import get_logger
from graphrag_core.models import AsyncTask, Query, QueryAnalysis, QueryResult, TaskStatus

logger = get_logger(__name__)

T = TypeVar("T")

ResultCallback = Callable[[QueryResult], None]
ErrorCallback = Callable[[GraphRagError], None]


class OrchestratorState(str, Enum):
    IDLE = "idle"
    PENDING = "pending"
    STREAMING = "streaming"
    SUCCESS = "success"
    FAILED = "failed"


TERMINAL_STATES = {OrchestratorState.SUCCESS, OrchestratorState.FAILED}


class QuerySnapshot(BaseModel):
    """Everything the presentation layer may read about the current operation."""
    state: OrchestratorState = OrchestratorState.IDLE
    operation: Optional[str] = Field(default=None, description="query, stream, submit_async, poll_async or analyze.")
    result: Optional[QueryResult] = None
    task: Optional[AsyncTask] = None
    analysis: Optional[QueryAnalysis] = None
    failure: Optional[Failure] = None
    fragments: int = Field(0, description="Results received so far on the current push channel.")


Listener = Callable[[QuerySnapshot], None]


class StreamHandle:
    """
    Cancellation token for one push channel. cancel() is idempotent and,
    once called, no further result or error callback fires for this channel.
    """
    def __init__(self, on_cancel: Callable[["StreamHandle"], None] = None):
        self._cancelled = False
        self._task: Optional[asyncio.Task] = None
        self._on_cancel = on_cancel

    @property
    def cancelled(self) -> bool:
        return self._cancelled

    @property
    def done(self) -> bool:
        return self._task is not None and self._task.done()

    def cancel(self):
        if self._cancelled:
            return
        self._cancelled = True
        if self._task is not None and not self._task.done():
            self._task.cancel()
        if self._on_cancel is not None:
            self._on_cancel(self)

    async def wait(self):
        """Waits until the channel has terminated, whether it finished or was cancelled."""
        if self._task is None:
            return
        try:
            await self._task
        except asyncio.CancelledError:
            if not self._cancelled:
                raise


class QueryOrchestrator:
    """
    Runs one of three request protocols (synchronous, streaming, submit-then-poll)
    per user query and exposes a single observable lifecycle:

        idle -> pending -> success | failed
        idle -> pending -> streaming -> success | failed

    Starting any operation closes a live push channel first, and completions
    of superseded operations never touch the current state.
    """
    def __init__(self, api):
        self.api = api
        self._snapshot = QuerySnapshot()
        self._listeners: List[Listener] = []
        self._active_stream: Optional[StreamHandle] = None
        self._operation_token = 0
        self._tasks: Dict[str, AsyncTask] = {}

    # --- Observable state ---

    @property
    def state(self) -> OrchestratorState:
        return self._snapshot.state

    @property
    def snapshot(self) -> QuerySnapshot:
        return self._snapshot

    @property
    def active_stream(self) -> Optional[StreamHandle]:
        return self._active_stream

    def get_task(self, task_id: str) -> Optional[AsyncTask]:
        return self._tasks.get(task_id)

    def subscribe(self, listener: Listener) -> Callable[[], None]:
        """Registers a listener called with every new snapshot; returns an unsubscribe function."""
        self._listeners.append(listener)

        def unsubscribe():
            if listener in self._listeners:
                self._listeners.remove(listener)
        return unsubscribe

    def reset(self):
        """Force-returns to idle: closes any live channel and discards pending completions."""
        self._cancel_active_stream()
        self._operation_token += 1
        self._publish(QuerySnapshot())

    # --- Protocols ---

    async def run_synchronous(self, query: Query) -> QueryResult:
        _require_text(query.question, "question")
        token, result = await self._execute("query", self.api.query(query))
        self._succeed(token, result=result)
        return result

    def run_streaming(
        self,
        query: Query,
        on_result: ResultCallback,
        on_error: ErrorCallback,
        close_on_result: bool = True,
    ) -> StreamHandle:
        """
        Opens one push channel and returns its handle immediately.

        Each decoded message is handed to on_result; a decode failure or channel
        error goes to on_error and ends the channel. With close_on_result the
        channel is closed after the first complete answer.
        """
        _require_text(query.question, "question")
        loop = asyncio.get_running_loop()
        token = self._begin("stream")

        handle = StreamHandle(on_cancel=self._on_stream_cancelled)
        # No await between closing the old channel and taking the slot
        self._active_stream = handle
        handle._task = loop.create_task(
            self._consume_stream(handle, token, query, on_result, on_error, close_on_result)
        )
        return handle

    async def submit_async(self, query: Query) -> AsyncTask:
        _require_text(query.question, "question")
        token, task = await self._execute("submit_async", self.api.submit_async_query(query))
        self._tasks[task.task_id] = task
        logger.info("Async task submitted", extra={"task_id": task.task_id})
        self._succeed(token, task=task)
        return task

    async def poll_async(self, task_id: str) -> Union[AsyncTask, QueryResult]:
        """
        Polls the task exactly once. Returns the task while it is running or
        unknown, otherwise the finished QueryResult (the task becomes completed).
        A failed poll leaves the task's last known status unchanged.
        """
        _require_text(task_id, "task id")
        known = self._tasks.get(task_id) or AsyncTask(task_id=task_id)
        token, outcome = await self._execute("poll_async", self.api.get_async_result(task_id))

        status = TaskStatus.COMPLETED if isinstance(outcome, QueryResult) else outcome
        task = known.advance(status)
        if task.status != status:
            logger.warning(
                "Ignoring backwards task transition",
                extra={"task_id": task_id, "from": known.status.value, "to": status.value},
            )
        self._tasks[task_id] = task

        if isinstance(outcome, QueryResult):
            self._succeed(token, task=task, result=outcome)
            return outcome
        self._succeed(token, task=task)
        return task

    async def analyze(self, question: str) -> QueryAnalysis:
        _require_text(question, "question")
        token, analysis = await self._execute("analyze", self.api.analyze_query(question))
        self._succeed(token, analysis=analysis)
        return analysis

    # --- Internals ---

    async def _execute(self, operation: str, call: Awaitable[T]) -> Tuple[int, T]:
        token = self._begin(operation)
        try:
            value = await call
        except GraphRagError as e:
            self._fail(token, operation, e)
            raise
        return token, value

    def _begin(self, operation: str) -> int:
        self._cancel_active_stream()
        self._operation_token += 1
        if self._snapshot.state in TERMINAL_STATES:
            self._publish(QuerySnapshot())
        self._publish(QuerySnapshot(state=OrchestratorState.PENDING, operation=operation))
        logger.info("Operation started", extra={"operation": operation})
        return self._operation_token

    def _succeed(self, token: int, **fields):
        if token != self._operation_token:
            logger.info("Discarding superseded result", extra={"operation": self._snapshot.operation})
            return
        self._publish(self._snapshot.model_copy(update={"state": OrchestratorState.SUCCESS, **fields}))

    def _fail(self, token: int, operation: str, error: GraphRagError):
        if token != self._operation_token:
            return
        logger.warning("Operation failed", extra={"operation": operation, "kind": error.kind, "error": error.message})
        self._publish(self._snapshot.model_copy(update={
            "state": OrchestratorState.FAILED,
            "failure": error.to_failure(operation),
        }))

    def _publish(self, snapshot: QuerySnapshot):
        self._snapshot = snapshot
        for listener in list(self._listeners):
            listener(snapshot)

    def _owns(self, handle: StreamHandle) -> bool:
        return self._active_stream is handle and not handle.cancelled

    def _cancel_active_stream(self):
        handle, self._active_stream = self._active_stream, None
        if handle is not None:
            logger.info("Closing previous push channel")
            handle.cancel()

    def _on_stream_cancelled(self, handle: StreamHandle):
        # Cancelled directly by the caller while still current: back to idle
        if self._active_stream is handle:
            self._active_stream = None
            self._operation_token += 1
            self._publish(QuerySnapshot())

    async def _consume_stream(
        self,
        handle: StreamHandle,
        token: int,
        query: Query,
        on_result: ResultCallback,
        on_error: ErrorCallback,
        close_on_result: bool,
    ):
        results = self.api.stream_query(query)
        try:
            async for result in results:
                if not self._owns(handle):
                    return
                self._publish(self._snapshot.model_copy(update={
                    "state": OrchestratorState.STREAMING,
                    "result": result,
                    "fragments": self._snapshot.fragments + 1,
                }))
                on_result(result)
                if close_on_result:
                    break
            if self._owns(handle):
                self._succeed(token)
        except GraphRagError as e:
            if self._owns(handle):
                self._fail(token, "stream", e)
                on_error(e)
        except Exception as e:
            # Raised by the caller's result callback
            logger.exception("Result callback failed", extra={"operation": "stream"})
            if self._owns(handle):
                error = GraphRagError(f"Result handler failed: {e}")
                self._fail(token, "stream", error)
                on_error(error)
        finally:
            await results.aclose()
            if self._active_stream is handle:
                self._active_stream = None
            logger.info("Push channel finished", extra={"cancelled": handle.cancelled})


def _require_text(value: str, what: str):
    if not value or not value.strip():
        raise QueryValidationError(f"Please enter a {what}")
