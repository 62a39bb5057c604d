"""Durable runtime — drives instances by replaying them whenever history grows.

The runtime is the glue between the pure :class:`ReplayEngine`, the history
log and the activity executor. It owns no orchestration state of its own:
everything it needs is re-read from history on each step, so a fresh runtime
pointed at the same log picks up exactly where a crashed one stopped.

ARCHITECTURE
────────────
::

    client thread(s)                  dispatch loop (single thread)
    ───────────────                   ─────────────────────────────
    start_orchestration ──append──►   wake(instance)
    terminate ───────────────────►      ├─ read history → ReplayEngine.execute
                                        ├─ append actions (expected_version)
                                        │     conflict → re-read, replay again
                                        ├─ dispatch outstanding activities ──► executor pool
                                        │     backoff delay → held until due, then pool
                                        ├─ create / collect sub-orchestrations
                                        └─ terminal → notify parent
                                      outcome(instance, task, attempt)  ◄── pool callback
                                        └─ append TASK_COMPLETED / TASK_FAILED, wake

Activity threads never append; they post outcomes to the loop, which is the
only writer of a process. ``expected_version`` catches writers in other
processes.

Delivery guarantees:
    - an activity attempt is dispatched at most once per runtime (in-flight set)
    - after a restart, every scheduled attempt with no outcome is dispatched
      exactly once more (``recover``)
    - only the first outcome per attempt counts (``HistoryIndex``)
"""

from __future__ import annotations

import heapq
import itertools
import queue
import threading
import time
import uuid
from concurrent.futures import Future
from dataclasses import dataclass
from functools import partial
from typing import Any

from durable_mr.core.errors import (
    ConcurrentAppendConflict,
    ErrorCategory,
    FailureDetails,
    InstanceExistsError,
    InstanceNotFoundError,
    OrchestrationError,
    RegistrationError,
)
from durable_mr.core.logging import LogContext, get_logger
from durable_mr.core.settings import DurableSettings, get_settings
from durable_mr.execution.executor import ActivityExecutor, ActivityOutcome
from durable_mr.execution.registry import Registry
from durable_mr.execution.retry import RetryPolicy
from durable_mr.history.events import EventType, HistoryEvent, to_payload
from durable_mr.history.index import HistoryIndex
from durable_mr.history.log import HistoryLog, InMemoryHistoryLog
from durable_mr.history.sqlite import SqliteHistoryLog
from durable_mr.history.state import OrchestrationState
from durable_mr.orchestration.engine import EngineStatus, OrchestrationDecision, ReplayEngine

logger = get_logger(__name__)

MAX_APPEND_ATTEMPTS = 5


@dataclass(frozen=True)
class _Message:
    kind: str  # "wake" | "outcome" | "terminate"
    instance_id: str
    payload: Any = None


_STOP = object()


def create_history_log(settings: DurableSettings) -> HistoryLog:
    """Build the history backend named in settings."""
    if settings.history_backend == "sqlite":
        return SqliteHistoryLog(settings.database_path)
    return InMemoryHistoryLog()


class DurableRuntime:
    """Runs orchestrations durably on top of a history log.

    Example:
        >>> with DurableRuntime(registry) as runtime:
        ...     instance_id = runtime.start_orchestration("map_reduce", job_input)
        ...     state = runtime.wait_for_completion(instance_id, timeout=30)
        >>> state.output
        35
    """

    def __init__(
        self,
        registry: Registry,
        history: HistoryLog | None = None,
        *,
        executor: ActivityExecutor | None = None,
        settings: DurableSettings | None = None,
        default_retry: RetryPolicy | None = None,
    ):
        self.settings = settings or get_settings()
        self.registry = registry
        self.history = history if history is not None else InMemoryHistoryLog()
        self._owns_executor = executor is None
        self.executor = executor or ActivityExecutor(
            registry,
            max_workers=self.settings.max_workers,
            default_timeout=self.settings.task_timeout_seconds,
        )
        self.engine = ReplayEngine(
            registry,
            default_retry=default_retry or RetryPolicy.from_settings(self.settings),
        )

        self._queue: queue.Queue = queue.Queue()
        self._cond = threading.Condition()
        self._pending = 0
        self._inflight: set[tuple[str, int, int]] = set()
        # (due, seq, instance_id, TASK_SCHEDULED) for attempts waiting out a backoff
        self._delayed: list[tuple[float, int, str, HistoryEvent]] = []
        self._delay_seq = itertools.count()
        self._thread: threading.Thread | None = None

    @classmethod
    def from_settings(cls, registry: Registry, settings: DurableSettings | None = None) -> DurableRuntime:
        settings = settings or get_settings()
        return cls(registry, create_history_log(settings), settings=settings)

    # ── Lifecycle ────────────────────────────────────────────────

    def start(self, *, recover: bool = True) -> DurableRuntime:
        """Start the dispatch loop; optionally resume unfinished instances."""
        if self._thread is not None:
            return self
        self._thread = threading.Thread(target=self._run_loop, name="durable-dispatch", daemon=True)
        self._thread.start()
        logger.info("runtime_started", history=type(self.history).__name__)
        if recover:
            self.recover()
        return self

    def stop(self, timeout: float | None = 10.0) -> None:
        """Stop the dispatch loop. In-flight activities are abandoned."""
        if self._thread is None:
            return
        self._queue.put(_STOP)
        self._thread.join(timeout)
        self._thread = None
        if self._owns_executor:
            self.executor.shutdown(wait=False)
        logger.info("runtime_stopped")

    @property
    def is_running(self) -> bool:
        return self._thread is not None and self._thread.is_alive()

    def __enter__(self) -> DurableRuntime:
        return self.start()

    def __exit__(self, *args) -> None:
        self.stop()

    # ── Client API ───────────────────────────────────────────────

    def start_orchestration(
        self,
        name: str,
        input: Any = None,
        *,
        instance_id: str | None = None,
    ) -> str:
        """Create a new instance and schedule its first replay.

        Raises:
            RegistrationError: ``name`` is not a registered orchestrator
            OrchestrationError: ``input`` does not fit the orchestrator's input type
            InstanceExistsError: ``instance_id`` already exists
        """
        definition = self.registry.get_orchestrator(name)
        try:
            definition.build_input(to_payload(input))
        except RegistrationError as e:
            raise OrchestrationError(
                f"Invalid input for '{name}': {e}", category=ErrorCategory.VALIDATION
            ) from e

        instance_id = instance_id or uuid.uuid4().hex
        try:
            self.history.append(
                instance_id,
                HistoryEvent.orchestrator_started(name, input),
                expected_version=0,
            )
        except ConcurrentAppendConflict as e:
            raise InstanceExistsError(instance_id) from e
        logger.info("orchestration_started", instance_id=instance_id, orchestration=name)
        self._post(_Message("wake", instance_id))
        return instance_id

    def get_status(self, instance_id: str) -> OrchestrationState:
        state = OrchestrationState.from_history(instance_id, self.history.read(instance_id))
        if state is None:
            raise InstanceNotFoundError(instance_id)
        return state

    def get_history(self, instance_id: str) -> list[HistoryEvent]:
        events = self.history.read(instance_id).to_list()
        if not events:
            raise InstanceNotFoundError(instance_id)
        return events

    def terminate(self, instance_id: str, reason: str = "") -> None:
        """Request termination; recorded as a terminal event by the loop."""
        if not self.history.exists(instance_id):
            raise InstanceNotFoundError(instance_id)
        self._post(_Message("terminate", instance_id, reason))

    def wait_for_completion(self, instance_id: str, timeout: float | None = None) -> OrchestrationState:
        """Block until the instance is terminal.

        Raises:
            TimeoutError: still not terminal after ``timeout`` seconds
        """
        deadline = None if timeout is None else time.monotonic() + timeout
        with self._cond:
            while True:
                state = self.get_status(instance_id)
                if state.status.is_terminal:
                    return state
                wait = 0.5
                if deadline is not None:
                    remaining = deadline - time.monotonic()
                    if remaining <= 0:
                        raise TimeoutError(
                            f"Instance '{instance_id}' still {state.status.value} after {timeout}s"
                        )
                    wait = min(wait, remaining)
                self._cond.wait(wait)

    def wait_until_idle(self, timeout: float | None = None) -> bool:
        """Wait until no messages are queued and no activity is in flight."""
        with self._cond:
            return self._cond.wait_for(lambda: self._pending == 0 and not self._inflight, timeout)

    def recover(self) -> int:
        """Wake every instance that may still have work; returns how many."""
        woken = 0
        for instance_id in self.history.list_instances():
            index = HistoryIndex(self.history.read(instance_id))
            if index.started is None:
                continue
            has_parent = bool(index.started.data.get("parent_instance_id"))
            if index.terminal is None or has_parent:
                self._post(_Message("wake", instance_id))
                woken += 1
        logger.info("recovery_scheduled", instances=woken)
        return woken

    # ── Dispatch loop ────────────────────────────────────────────

    def _post(self, message: _Message) -> None:
        with self._cond:
            self._pending += 1
        self._queue.put(message)

    def _run_loop(self) -> None:
        while True:
            self._submit_due()
            try:
                message = self._queue.get(timeout=self._until_next_due())
            except queue.Empty:
                continue
            if message is _STOP:
                break
            try:
                with LogContext(instance_id=message.instance_id):
                    self._handle(message)
            except Exception:
                logger.exception("dispatch_failed", kind=message.kind, instance_id=message.instance_id)
            finally:
                with self._cond:
                    self._pending -= 1
                    self._cond.notify_all()

    def _handle(self, message: _Message) -> None:
        if message.kind == "wake":
            self._handle_wake(message.instance_id)
        elif message.kind == "outcome":
            self._handle_outcome(message.instance_id, *message.payload)
        elif message.kind == "terminate":
            self._handle_terminate(message.instance_id, message.payload)
        else:
            raise OrchestrationError(f"Unknown runtime message kind: {message.kind}")

    def _handle_wake(self, instance_id: str) -> None:
        index = HistoryIndex(self.history.read(instance_id))
        if index.started is None:
            logger.warning("wake_for_unknown_instance", instance_id=instance_id)
            return

        with LogContext(orchestration=index.started.data.get("name")):
            self._replay_and_append(instance_id, index)
            index = HistoryIndex(self.history.read(instance_id))
            if index.terminal is not None:
                self._notify_parent(instance_id, index)
            else:
                self._dispatch_outstanding(instance_id, index)

    def _replay_and_append(self, instance_id: str, index: HistoryIndex) -> None:
        """Replay and record the decision; on a conflict re-read and replay again.

        Raises:
            OrchestrationError: still conflicting after ``MAX_APPEND_ATTEMPTS``
        """
        for _ in range(MAX_APPEND_ATTEMPTS):
            decision = self.engine.execute(instance_id, index.events)
            try:
                self._append_all(instance_id, decision.actions, index.version)
            except ConcurrentAppendConflict as e:
                logger.info(
                    "append_conflict_retrying",
                    instance_id=instance_id,
                    expected=e.expected_version,
                    actual=e.actual_version,
                )
                index = HistoryIndex(self.history.read(instance_id))
                continue
            self._log_decision(index.started.data.get("name"), decision)
            return
        raise OrchestrationError(
            f"Could not append decisions for '{instance_id}' after {MAX_APPEND_ATTEMPTS} conflicts"
        )

    def _handle_outcome(self, instance_id: str, task_id: int, attempt: int, outcome: ActivityOutcome) -> None:
        if outcome.succeeded:
            event = HistoryEvent.task_completed(task_id, outcome.result, attempt=attempt)
            logger.info("task_completed", task_id=task_id, name=outcome.name, attempt=attempt)
        else:
            event = HistoryEvent.task_failed(task_id, outcome.failure, attempt=attempt)
            logger.info(
                "task_failed",
                task_id=task_id,
                name=outcome.name,
                attempt=attempt,
                error=str(outcome.failure),
            )
        try:
            self.history.append(instance_id, event)
        finally:
            with self._cond:
                self._inflight.discard((instance_id, task_id, attempt))
        self._handle_wake(instance_id)

    def _handle_terminate(self, instance_id: str, reason: str) -> None:
        for _ in range(MAX_APPEND_ATTEMPTS):
            index = HistoryIndex(self.history.read(instance_id))
            if index.terminal is not None:
                logger.info("terminate_ignored_already_terminal", instance_id=instance_id)
                return
            try:
                self.history.append(
                    instance_id,
                    HistoryEvent.orchestrator_terminated(reason),
                    expected_version=index.version,
                )
            except ConcurrentAppendConflict:
                continue
            logger.info("orchestration_terminated", instance_id=instance_id, reason=reason)
            self._notify_parent(instance_id, HistoryIndex(self.history.read(instance_id)))
            return
        raise OrchestrationError(f"Could not terminate '{instance_id}' after {MAX_APPEND_ATTEMPTS} conflicts")

    def _append_all(self, instance_id: str, actions: list[HistoryEvent], version: int) -> None:
        for action in actions:
            self.history.append(instance_id, action, expected_version=version)
            version += 1

    def _log_decision(self, name: str | None, decision: OrchestrationDecision) -> None:
        for action in decision.scheduled:
            logger.info(
                "task_scheduled",
                instance_id=decision.instance_id,
                orchestration=name,
                task_id=action.task_id,
                name=action.data.get("name"),
                kind=action.event_type.value,
                attempt=action.attempt,
            )
        # failures are logged by the engine
        if decision.actions and decision.status is EngineStatus.COMPLETED:
            logger.info("orchestration_completed", instance_id=decision.instance_id, orchestration=name)

    # ── Activities & sub-orchestrations ──────────────────────────

    def _dispatch_outstanding(self, instance_id: str, index: HistoryIndex) -> None:
        for event in index.outstanding_activities():
            key = (instance_id, event.task_id, event.attempt)
            with self._cond:
                if key in self._inflight:
                    continue
                self._inflight.add(key)
            delay = event.data.get("delay_seconds") or 0.0
            if delay > 0:
                due = time.monotonic() + delay
                heapq.heappush(self._delayed, (due, next(self._delay_seq), instance_id, event))
            else:
                self._submit_activity(instance_id, event)

        for event in index.outstanding_sub_orchestrations():
            child_id = event.data["child_instance_id"]
            child_index = HistoryIndex(self.history.read(child_id))
            if child_index.started is None:
                self._create_child(instance_id, event, child_id)
            elif child_index.terminal is not None:
                self._deliver_child_outcome(instance_id, event.task_id, child_index)

    def _submit_activity(self, instance_id: str, event: HistoryEvent) -> None:
        name = event.data["name"]
        future = self.executor.submit(
            name,
            event.data.get("input"),
            timeout=event.data.get("timeout_seconds"),
        )
        future.add_done_callback(
            partial(self._on_activity_done, instance_id, event.task_id, event.attempt, name)
        )

    def _submit_due(self) -> None:
        """Hand every attempt whose backoff has elapsed to the executor."""
        now = time.monotonic()
        while self._delayed and self._delayed[0][0] <= now:
            _, _, instance_id, event = heapq.heappop(self._delayed)
            try:
                self._submit_activity(instance_id, event)
            except Exception:
                logger.exception("delayed_dispatch_failed", instance_id=instance_id, task_id=event.task_id)
                with self._cond:
                    self._inflight.discard((instance_id, event.task_id, event.attempt))
                    self._cond.notify_all()

    def _until_next_due(self) -> float | None:
        if not self._delayed:
            return None
        return max(0.0, self._delayed[0][0] - time.monotonic())

    def _on_activity_done(
        self, instance_id: str, task_id: int, attempt: int, name: str, future: Future
    ) -> None:
        if future.cancelled():
            with self._cond:
                self._inflight.discard((instance_id, task_id, attempt))
                self._cond.notify_all()
            return
        try:
            outcome = future.result()
        except Exception as e:
            outcome = ActivityOutcome(name=name, failure=FailureDetails.from_exception(e))
        self._post(_Message("outcome", instance_id, (task_id, attempt, outcome)))

    def _create_child(self, parent_id: str, event: HistoryEvent, child_id: str) -> None:
        try:
            self.history.append(
                child_id,
                HistoryEvent.orchestrator_started(
                    event.data["name"], event.data.get("input"), parent_instance_id=parent_id
                ),
                expected_version=0,
            )
        except ConcurrentAppendConflict:
            logger.info("sub_orchestration_already_created", child_instance_id=child_id)
        else:
            logger.info(
                "sub_orchestration_started",
                parent_instance_id=parent_id,
                child_instance_id=child_id,
                orchestration=event.data["name"],
            )
        self._post(_Message("wake", child_id))

    def _notify_parent(self, instance_id: str, index: HistoryIndex) -> None:
        parent_id = index.started.data.get("parent_instance_id") if index.started else None
        if not parent_id:
            return
        parent_index = HistoryIndex(self.history.read(parent_id))
        scheduled = parent_index.find_sub_orchestration(instance_id)
        if scheduled is None or scheduled.task_id in parent_index.sub_outcomes:
            return
        self._deliver_child_outcome(parent_id, scheduled.task_id, index)

    def _deliver_child_outcome(self, parent_id: str, task_id: int, child_index: HistoryIndex) -> None:
        terminal = child_index.terminal
        if terminal.event_type is EventType.ORCHESTRATOR_COMPLETED:
            event = HistoryEvent.sub_orchestration_completed(task_id, terminal.data.get("output"))
        else:
            failure = terminal.failure or FailureDetails(
                "Terminated", terminal.data.get("reason", ""), retryable=False
            )
            event = HistoryEvent.sub_orchestration_failed(task_id, failure)
        self.history.append(parent_id, event)
        logger.info(
            "sub_orchestration_finished",
            parent_instance_id=parent_id,
            task_id=task_id,
            outcome=event.event_type.value,
        )
        self._post(_Message("wake", parent_id))
