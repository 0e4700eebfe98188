"""Named tasks with declared predecessors, and a sequential runner.

A :class:`TaskGraph` holds tasks keyed by name. :meth:`TaskGraph.plan` turns a
target into an execution order where every task follows all of its
predecessors; :class:`TaskRunner` executes that order one task at a time and
stops at the first failure, marking the remaining tasks as skipped.

Examples
--------
>>> graph = TaskGraph()
>>> graph.add(Task("build", lambda ctx: "built"))
>>> graph.add(Task("deploy", lambda ctx: ctx.results["build"], depends_on=("build",)))
>>> graph.plan("deploy")
('build', 'deploy')
"""

from __future__ import annotations

import time
from dataclasses import dataclass, field
from enum import StrEnum
from typing import TYPE_CHECKING

from docpublish._shared.logging import get_logger, with_fields
from docpublish._shared.metrics import observe_task_run
from docpublish.errors import TaskCycleError, TaskFailedError, TaskGraphError, UnknownTaskError

if TYPE_CHECKING:
    from collections.abc import Callable, Iterator

__all__ = [
    "RunReport",
    "Task",
    "TaskContext",
    "TaskGraph",
    "TaskOutcome",
    "TaskRunner",
    "TaskStatus",
]

LOGGER = get_logger(__name__)


class TaskStatus(StrEnum):
    """Lifecycle of a task inside a run."""

    PENDING = "pending"
    SUCCEEDED = "succeeded"
    FAILED = "failed"
    SKIPPED = "skipped"


@dataclass(slots=True)
class TaskContext:
    """State shared by the tasks of one run.

    ``results`` maps the names of finished tasks to their return values, so a
    task can consume what its predecessors produced.
    """

    target: str
    results: dict[str, object] = field(default_factory=dict)


@dataclass(slots=True, frozen=True)
class Task:
    """A named unit of work and the tasks that must succeed before it starts."""

    name: str
    action: Callable[[TaskContext], object]
    depends_on: tuple[str, ...] = ()
    description: str = ""


@dataclass(slots=True)
class TaskOutcome:
    """Status and timing of one task in a run."""

    name: str
    status: TaskStatus = TaskStatus.PENDING
    duration_seconds: float = 0.0
    error: str | None = None


@dataclass(slots=True)
class RunReport:
    """Per-task outcomes of a run, in execution order."""

    target: str
    outcomes: list[TaskOutcome]
    context: TaskContext

    @property
    def succeeded(self) -> bool:
        """``True`` when every planned task succeeded."""
        return all(outcome.status is TaskStatus.SUCCEEDED for outcome in self.outcomes)

    def outcome(self, name: str) -> TaskOutcome:
        """Return the outcome recorded for ``name``.

        Raises
        ------
        KeyError
            When ``name`` was not part of the run.
        """
        for outcome in self.outcomes:
            if outcome.name == name:
                return outcome
        raise KeyError(name)


class TaskGraph:
    """Registry of tasks and their dependency edges."""

    def __init__(self) -> None:
        self._tasks: dict[str, Task] = {}

    def __contains__(self, name: object) -> bool:
        return name in self._tasks

    def __iter__(self) -> Iterator[Task]:
        return iter(self._tasks.values())

    def __len__(self) -> int:
        return len(self._tasks)

    def add(self, task: Task) -> None:
        """Register ``task``.

        Dependencies may name tasks registered later; they are checked when a
        plan is computed.

        Raises
        ------
        TaskGraphError
            When a task with the same name is already registered or the task
            depends on itself.
        """
        if task.name in self._tasks:
            message = f"Task '{task.name}' is already registered"
            raise TaskGraphError(message, extensions={"task": task.name})
        if task.name in task.depends_on:
            raise TaskCycleError((task.name, task.name))
        self._tasks[task.name] = task

    def task(
        self, name: str, *, depends_on: tuple[str, ...] = (), description: str = ""
    ) -> Callable[[Callable[[TaskContext], object]], Callable[[TaskContext], object]]:
        """Register the decorated function as task ``name``."""

        def decorator(action: Callable[[TaskContext], object]) -> Callable[[TaskContext], object]:
            self.add(Task(name, action, depends_on=depends_on, description=description))
            return action

        return decorator

    def get(self, name: str) -> Task:
        """Return the task registered as ``name``.

        Raises
        ------
        UnknownTaskError
            When no such task exists.
        """
        try:
            return self._tasks[name]
        except KeyError:
            raise UnknownTaskError(name, known=tuple(self._tasks)) from None

    def plan(self, target: str) -> tuple[str, ...]:
        """Return the execution order for ``target``, predecessors first.

        Only ``target`` and its transitive dependencies are included. Among
        independent predecessors the declared order is kept.

        Raises
        ------
        UnknownTaskError
            When ``target`` or one of its dependencies is not registered.
        TaskCycleError
            When the dependencies of ``target`` form a cycle.
        """
        order: list[str] = []
        done: set[str] = set()
        path: list[str] = []

        def visit(name: str) -> None:
            if name in done:
                return
            if name in path:
                raise TaskCycleError((*path[path.index(name) :], name))
            task = self.get(name)
            path.append(name)
            for dependency in task.depends_on:
                visit(dependency)
            path.pop()
            done.add(name)
            order.append(name)

        visit(target)
        return tuple(order)


class TaskRunner:
    """Execute a target's plan sequentially, stopping at the first failure."""

    def __init__(self, graph: TaskGraph) -> None:
        self.graph = graph

    def run(self, target: str) -> RunReport:
        """Run ``target`` after all of its predecessors.

        Returns
        -------
        RunReport
            Outcomes of every planned task, all ``succeeded``.

        Raises
        ------
        UnknownTaskError, TaskCycleError
            Before anything runs, when the plan cannot be computed.
        TaskFailedError
            When a task raises. Its ``report`` attribute holds the outcomes:
            the failed task, and the tasks after it marked ``skipped``.
        """
        plan = self.graph.plan(target)
        context = TaskContext(target=target)
        outcomes = [TaskOutcome(name=name) for name in plan]
        report = RunReport(target=target, outcomes=outcomes, context=context)
        logger = with_fields(LOGGER, operation="run", target=target, plan=list(plan))
        logger.info("Run started", extra={"status": "started"})

        for index, outcome in enumerate(outcomes):
            task = self.graph.get(outcome.name)
            task_logger = with_fields(logger, operation="run", target=target, task=task.name)
            start = time.monotonic()
            try:
                with observe_task_run(task.name, depends_on=task.depends_on):
                    result = task.action(context)
            except Exception as exc:
                outcome.status = TaskStatus.FAILED
                outcome.duration_seconds = time.monotonic() - start
                outcome.error = str(exc)
                for skipped in outcomes[index + 1 :]:
                    skipped.status = TaskStatus.SKIPPED
                task_logger.error(
                    "Task failed",
                    extra={
                        "error": str(exc),
                        "skipped": [skipped.name for skipped in outcomes[index + 1 :]],
                    },
                )
                raise TaskFailedError(task.name, exc, report=report) from exc

            outcome.status = TaskStatus.SUCCEEDED
            outcome.duration_seconds = time.monotonic() - start
            context.results[task.name] = result
            task_logger.info(
                "Task succeeded",
                extra={"duration_ms": outcome.duration_seconds * 1000},
            )

        logger.info("Run finished")
        return report
