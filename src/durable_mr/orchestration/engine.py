"""Replay engine — deterministic re-execution of orchestration logic.

Every time an instance has new events the engine re-runs its orchestrator
generator from the top against the full history:

- a scheduling call whose task id is already recorded is checked against the
  recorded event (kind, name, input) and, if resolved, its outcome is fed back
  into the generator synchronously;
- a scheduling call with no recorded event is new work: a scheduling event is
  emitted as an action and, once the generator yields something unresolved,
  the run suspends.

The engine is a pure function of (registry, history): it performs no I/O,
reads no clock and appends nothing. The runtime appends the returned actions.

ARCHITECTURE
────────────
::

    ReplayEngine.execute(instance_id, history)
        │
        ├─ HistoryIndex(history)            what is recorded per task id
        ├─ terminal event?  → decision(status from history, no actions)
        └─ _ReplayRun
              ├── OrchestrationContext(on_schedule=check-or-emit)
              ├── drive generator: send(result) / throw(error)
              │     yielded task unresolved → SUSPEND (RUNNING)
              │     StopIteration           → ORCHESTRATOR_COMPLETED
              │     uncaught exception      → ORCHESTRATOR_FAILED
              └── divergence from history  → ORCHESTRATOR_FAILED(NonDeterminismError)

    Retry: a TASK_FAILED on the current attempt, with attempts left and a
    retryable error, emits TASK_SCHEDULED(attempt + 1, delay) instead of
    resolving the task.
"""

from __future__ import annotations

import copy
from collections.abc import Iterable
from dataclasses import dataclass, field
from enum import Enum
from typing import Any

from durable_mr.core.errors import (
    FailureDetails,
    NonDeterminismError,
    OrchestrationError,
    PartialFailure,
    RegistrationError,
    SubOrchestrationFailed,
    TaskFailedError,
)
from durable_mr.core.logging import get_logger
from durable_mr.execution.registry import OrchestratorDefinition, Registry
from durable_mr.execution.retry import RetryPolicy
from durable_mr.history.events import EventType, HistoryEvent, canonical_json
from durable_mr.history.index import HistoryIndex
from durable_mr.orchestration.context import OrchestrationContext
from durable_mr.orchestration.tasks import ScheduledTask, Task, TaskKind, WhenAllTask

logger = get_logger(__name__)


class EngineStatus(str, Enum):
    """Replay state machine: NOT_STARTED → RUNNING → terminal."""

    NOT_STARTED = "not_started"
    RUNNING = "running"
    COMPLETED = "completed"
    FAILED = "failed"
    TERMINATED = "terminated"


_TERMINAL_STATUS = {
    EventType.ORCHESTRATOR_COMPLETED: EngineStatus.COMPLETED,
    EventType.ORCHESTRATOR_FAILED: EngineStatus.FAILED,
    EventType.ORCHESTRATOR_TERMINATED: EngineStatus.TERMINATED,
}


@dataclass
class OrchestrationDecision:
    """What one replay decided: new events to append and the resulting status."""

    instance_id: str
    status: EngineStatus
    actions: list[HistoryEvent] = field(default_factory=list)
    output: Any = None
    failure: FailureDetails | None = None
    duplicates_ignored: int = 0

    @property
    def is_terminal(self) -> bool:
        return self.status in (EngineStatus.COMPLETED, EngineStatus.FAILED, EngineStatus.TERMINATED)

    @property
    def scheduled(self) -> list[HistoryEvent]:
        """Newly emitted scheduling actions."""
        return [
            a for a in self.actions
            if a.event_type in (EventType.TASK_SCHEDULED, EventType.SUB_ORCHESTRATION_SCHEDULED)
        ]


def failure_of(error: Exception) -> FailureDetails:
    """Failure payload for an error resolved into a fan-in or the instance."""
    if isinstance(error, TaskFailedError):
        return error.failure
    return FailureDetails.from_exception(error)


class ReplayEngine:
    """Replays orchestrator generators against their history."""

    def __init__(self, registry: Registry, *, default_retry: RetryPolicy | None = None):
        self.registry = registry
        self.default_retry = default_retry

    def execute(self, instance_id: str, history: Iterable[HistoryEvent]) -> OrchestrationDecision:
        index = HistoryIndex(history)

        if index.started is None:
            return OrchestrationDecision(instance_id, EngineStatus.NOT_STARTED)

        if index.terminal is not None:
            terminal = index.terminal
            return OrchestrationDecision(
                instance_id,
                _TERMINAL_STATUS[terminal.event_type],
                output=terminal.data.get("output"),
                failure=terminal.failure,
                duplicates_ignored=index.duplicates,
            )

        name = index.started.data.get("name", "")
        try:
            definition = self.registry.get_orchestrator(name)
        except RegistrationError as e:
            failure = FailureDetails.from_exception(e)
            logger.error("orchestrator_not_registered", instance_id=instance_id, name=name)
            return OrchestrationDecision(
                instance_id,
                EngineStatus.FAILED,
                actions=[HistoryEvent.orchestrator_failed(failure)],
                failure=failure,
            )

        if index.duplicates:
            logger.debug(
                "duplicate_completions_ignored",
                instance_id=instance_id,
                count=index.duplicates,
            )

        run = _ReplayRun(instance_id, definition, index, self.default_retry)
        decision = run.execute()
        decision.duplicates_ignored = index.duplicates
        return decision


class _ReplayRun:
    """State of a single replay pass."""

    def __init__(
        self,
        instance_id: str,
        definition: OrchestratorDefinition,
        index: HistoryIndex,
        default_retry: RetryPolicy | None,
    ):
        self.instance_id = instance_id
        self.definition = definition
        self.index = index
        self.default_retry = default_retry
        self.actions: list[HistoryEvent] = []
        self.produced_ids: set[int] = set()
        self.emitted_retries: set[tuple[int, int]] = set()
        self.violation: NonDeterminismError | None = None
        self.ctx: OrchestrationContext | None = None

    # ── Driving the generator ────────────────────────────────────

    def execute(self) -> OrchestrationDecision:
        started = self.index.started
        try:
            recorded_input = copy.deepcopy(started.data.get("input"))
            orchestration_input = self.definition.build_input(recorded_input)
            self.ctx = OrchestrationContext(
                self.instance_id,
                self.definition.name,
                orchestration_input,
                self._on_schedule,
                parent_instance_id=started.data.get("parent_instance_id"),
                default_retry=self.default_retry,
            )
            generator = self.definition.function(self.ctx)
        except Exception as e:
            return self._finish(error=e)

        send_value: Any = None
        throw_error: Exception | None = None
        while True:
            try:
                if throw_error is not None:
                    error, throw_error = throw_error, None
                    yielded = generator.throw(error)
                else:
                    yielded = generator.send(send_value)
            except StopIteration as stop:
                return self._finish(output=stop.value)
            except Exception as e:
                return self._finish(error=e)

            if self.violation is not None:
                generator.close()
                return self._finish(error=self.violation)

            if not isinstance(yielded, Task):
                generator.close()
                return self._finish(
                    error=OrchestrationError(
                        f"Orchestrator '{self.definition.name}' yielded "
                        f"{type(yielded).__name__}; only tasks from the context may be yielded"
                    )
                )

            self._resolve(yielded)
            if not yielded.is_complete:
                return self._suspend()

            if yielded.is_failed:
                throw_error = yielded.exception
                send_value = None
            else:
                send_value = yielded.result

    def _suspend(self) -> OrchestrationDecision:
        self.ctx.is_replaying = False
        violation = self._unreproduced_tasks()
        if violation is not None:
            return self._finish(error=violation)
        logger.debug(
            "replay_suspended",
            instance_id=self.instance_id,
            new_actions=len(self.actions),
            tasks_seen=self.ctx.tasks_scheduled,
        )
        return OrchestrationDecision(self.instance_id, EngineStatus.RUNNING, actions=self.actions)

    def _finish(self, *, output: Any = None, error: Exception | None = None) -> OrchestrationDecision:
        if error is None and self.violation is None:
            error = self._unreproduced_tasks()
        if self.violation is not None:
            error = self.violation

        if isinstance(error, NonDeterminismError):
            # decisions taken after a divergence are not trusted
            failure = FailureDetails.from_exception(error)
            logger.error(
                "non_determinism_detected",
                instance_id=self.instance_id,
                orchestration=self.definition.name,
                error=error.message,
            )
            return OrchestrationDecision(
                self.instance_id,
                EngineStatus.FAILED,
                actions=[HistoryEvent.orchestrator_failed(failure)],
                failure=failure,
            )

        if error is not None:
            failure = failure_of(error)
            logger.info(
                "orchestration_failed",
                instance_id=self.instance_id,
                orchestration=self.definition.name,
                error_type=failure.error_type,
                error=failure.message,
            )
            return OrchestrationDecision(
                self.instance_id,
                EngineStatus.FAILED,
                actions=self.actions + [HistoryEvent.orchestrator_failed(failure)],
                failure=failure,
            )

        completed = HistoryEvent.orchestrator_completed(output)
        return OrchestrationDecision(
            self.instance_id,
            EngineStatus.COMPLETED,
            actions=self.actions + [completed],
            output=completed.data["output"],
        )

    def _unreproduced_tasks(self) -> NonDeterminismError | None:
        missing = sorted(set(self.index.scheduled) - self.produced_ids)
        if not missing:
            return None
        return NonDeterminismError(
            f"History records task(s) {missing} that replay of "
            f"'{self.definition.name}' did not schedule",
            task_id=missing[0],
        )

    # ── Scheduling calls ─────────────────────────────────────────

    def _on_schedule(self, task: ScheduledTask) -> None:
        self.produced_ids.add(task.task_id)
        recorded = self.index.scheduled.get(task.task_id)

        if recorded is None:
            self.ctx.is_replaying = False
            self.actions.append(self._scheduling_event(task))
            return

        expected_type = (
            EventType.TASK_SCHEDULED
            if task.kind is TaskKind.ACTIVITY
            else EventType.SUB_ORCHESTRATION_SCHEDULED
        )
        problem = None
        if recorded.event_type is not expected_type:
            problem = f"expected {recorded.event_type.value}, replay made a {task.kind.value} call"
        elif recorded.data.get("name") != task.name:
            problem = f"recorded name '{recorded.data.get('name')}', replay called '{task.name}'"
        elif canonical_json(recorded.data.get("input")) != canonical_json(task.input):
            problem = f"input of '{task.name}' differs from the recorded input"
        elif (
            task.kind is TaskKind.SUB_ORCHESTRATION
            and recorded.data.get("child_instance_id") != task.child_instance_id
        ):
            problem = f"sub-orchestration instance id differs from '{recorded.data.get('child_instance_id')}'"

        if problem is not None:
            error = NonDeterminismError(
                f"Task {task.task_id} of '{self.definition.name}' diverged from history: {problem}",
                task_id=task.task_id,
            )
            if self.violation is None:
                self.violation = error
            raise error

    @staticmethod
    def _scheduling_event(task: ScheduledTask) -> HistoryEvent:
        if task.kind is TaskKind.ACTIVITY:
            return HistoryEvent.task_scheduled(
                task.task_id,
                task.name,
                task.input,
                attempt=1,
                timeout_seconds=task.timeout_seconds,
            )
        return HistoryEvent.sub_orchestration_scheduled(
            task.task_id, task.name, task.input, task.child_instance_id
        )

    # ── Resolution ───────────────────────────────────────────────

    def _resolve(self, task: Task) -> None:
        if task.is_complete:
            return
        if isinstance(task, WhenAllTask):
            self._resolve_all(task)
        elif isinstance(task, ScheduledTask) and task.kind is TaskKind.ACTIVITY:
            self._resolve_activity(task)
        elif isinstance(task, ScheduledTask):
            self._resolve_sub_orchestration(task)

    def _resolve_all(self, task: WhenAllTask) -> None:
        for child in task.children:
            self._resolve(child)
        if not all(child.is_complete for child in task.children):
            return

        keys = task.keys or [
            getattr(child, "task_id", position) for position, child in enumerate(task.children)
        ]
        results: list[Any] = []
        failed: dict[Any, FailureDetails] = {}
        for key, child in zip(keys, task.children):
            if child.is_failed:
                failed[key] = failure_of(child.exception)
                results.append(None)
            else:
                results.append(child.result)

        if failed:
            task._fail(PartialFailure(failed, results))
        elif task.keys is not None:
            task._complete(dict(zip(task.keys, results)))
        else:
            task._complete(results)

    def _resolve_activity(self, task: ScheduledTask) -> None:
        latest = self.index.latest_attempt.get(task.task_id)
        if latest is None:
            return
        attempt = latest.attempt
        outcome = self.index.task_outcomes.get((task.task_id, attempt))
        if outcome is None:
            return

        if outcome.event_type is EventType.TASK_COMPLETED:
            task._complete(copy.deepcopy(outcome.data.get("result")))
            return

        failure = outcome.failure
        policy = task.retry
        if policy is not None and policy.should_retry(attempt, failure):
            key = (task.task_id, attempt + 1)
            if key not in self.emitted_retries:
                self.emitted_retries.add(key)
                self.ctx.is_replaying = False
                self.actions.append(
                    HistoryEvent.task_scheduled(
                        task.task_id,
                        task.name,
                        task.input,
                        attempt=attempt + 1,
                        delay_seconds=policy.next_delay(attempt),
                        timeout_seconds=task.timeout_seconds,
                    )
                )
            return

        task._fail(TaskFailedError(task.name, failure, task_id=task.task_id))

    def _resolve_sub_orchestration(self, task: ScheduledTask) -> None:
        outcome = self.index.sub_outcomes.get(task.task_id)
        if outcome is None:
            return
        if outcome.event_type is EventType.SUB_ORCHESTRATION_COMPLETED:
            task._complete(copy.deepcopy(outcome.data.get("result")))
        else:
            task._fail(SubOrchestrationFailed(task.name, task.child_instance_id, outcome.failure))
