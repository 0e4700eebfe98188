"""Tests for docpublish.tasks."""

from __future__ import annotations

import pytest

from docpublish.errors import (
    BuildFailedError,
    TaskCycleError,
    TaskFailedError,
    TaskGraphError,
    UnknownTaskError,
)
from docpublish.tasks import Task, TaskContext, TaskGraph, TaskRunner, TaskStatus


def _recording_graph(events: list[str]) -> TaskGraph:
    graph = TaskGraph()

    def action(name: str):  # noqa: ANN202 - small factory
        def run(_context: TaskContext) -> str:
            events.append(name)
            return f"{name}-result"

        return run

    graph.add(Task("deploy", action("deploy"), depends_on=("mkdocs",)))
    graph.add(Task("mkdocs", action("mkdocs")))
    return graph


class TestTaskGraphPlan:
    """Tests for TaskGraph.plan."""

    def test_predecessors_come_first(self) -> None:
        """A task is ordered after every task it depends on."""
        graph = _recording_graph([])
        assert graph.plan("deploy") == ("mkdocs", "deploy")

    def test_only_target_closure_is_planned(self) -> None:
        """Tasks the target does not depend on are left out."""
        graph = _recording_graph([])
        assert graph.plan("mkdocs") == ("mkdocs",)

    def test_diamond_runs_shared_dependency_once(self) -> None:
        """A shared predecessor appears exactly once, before both dependents."""
        graph = TaskGraph()
        noop = lambda _ctx: None  # noqa: E731
        graph.add(Task("clean", noop))
        graph.add(Task("api", noop, depends_on=("clean",)))
        graph.add(Task("site", noop, depends_on=("clean",)))
        graph.add(Task("deploy", noop, depends_on=("api", "site")))

        assert graph.plan("deploy") == ("clean", "api", "site", "deploy")

    def test_unknown_target(self) -> None:
        """Planning an unregistered task names it and the known ones."""
        graph = _recording_graph([])
        with pytest.raises(UnknownTaskError) as exc_info:
            graph.plan("publish")
        assert exc_info.value.problem["known_tasks"] == ["deploy", "mkdocs"]
        assert exc_info.value.exit_code == 2

    def test_unknown_dependency(self) -> None:
        """A dependency that was never registered is reported at plan time."""
        graph = TaskGraph()
        graph.add(Task("deploy", lambda _ctx: None, depends_on=("mkdocs",)))
        with pytest.raises(UnknownTaskError, match="mkdocs"):
            graph.plan("deploy")

    def test_cycle_is_rejected(self) -> None:
        """Mutually dependent tasks raise TaskCycleError with the cycle path."""
        graph = TaskGraph()
        graph.add(Task("a", lambda _ctx: None, depends_on=("b",)))
        graph.add(Task("b", lambda _ctx: None, depends_on=("a",)))
        with pytest.raises(TaskCycleError) as exc_info:
            graph.plan("a")
        assert exc_info.value.cycle == ("a", "b", "a")

    def test_duplicate_and_self_dependency(self) -> None:
        """Registering a name twice or depending on oneself is refused."""
        graph = TaskGraph()
        graph.add(Task("mkdocs", lambda _ctx: None))
        with pytest.raises(TaskGraphError, match="already registered"):
            graph.add(Task("mkdocs", lambda _ctx: None))
        with pytest.raises(TaskCycleError):
            graph.add(Task("loop", lambda _ctx: None, depends_on=("loop",)))

    def test_decorator_registers_task(self) -> None:
        """The task decorator registers and returns the function."""
        graph = TaskGraph()

        @graph.task("mkdocs", description="Build")
        def build(_context: TaskContext) -> str:
            return "built"

        assert "mkdocs" in graph
        assert len(graph) == 1
        assert graph.get("mkdocs").description == "Build"
        assert build(TaskContext(target="mkdocs")) == "built"


class TestTaskRunner:
    """Tests for TaskRunner.run."""

    def test_runs_in_dependency_order_and_shares_results(self) -> None:
        """Each task runs once, after its predecessors, and results are collected."""
        events: list[str] = []
        report = TaskRunner(_recording_graph(events)).run("deploy")

        assert events == ["mkdocs", "deploy"]
        assert report.succeeded
        assert report.context.results == {"mkdocs": "mkdocs-result", "deploy": "deploy-result"}
        assert [outcome.status for outcome in report.outcomes] == [
            TaskStatus.SUCCEEDED,
            TaskStatus.SUCCEEDED,
        ]

    def test_dependent_sees_predecessor_result(self) -> None:
        """A task reads what its predecessor returned through the context."""
        graph = TaskGraph()
        graph.add(Task("mkdocs", lambda _ctx: "site/"))
        graph.add(
            Task("deploy", lambda ctx: ctx.results["mkdocs"] + "index.html", depends_on=("mkdocs",))
        )

        report = TaskRunner(graph).run("deploy")

        assert report.context.results["deploy"] == "site/index.html"

    def test_failure_stops_dependents(self) -> None:
        """When a predecessor fails its dependents never start and are skipped."""
        events: list[str] = []
        graph = TaskGraph()

        def failing_build(_context: TaskContext) -> None:
            events.append("mkdocs")
            raise BuildFailedError(
                "Documentation build failed: boom", command=["mkdocs", "build"], returncode=2
            )

        graph.add(Task("mkdocs", failing_build))
        graph.add(Task("deploy", lambda _ctx: events.append("deploy"), depends_on=("mkdocs",)))

        with pytest.raises(TaskFailedError) as exc_info:
            TaskRunner(graph).run("deploy")

        error = exc_info.value
        assert events == ["mkdocs"]
        assert error.task == "mkdocs"
        assert isinstance(error.cause, BuildFailedError)
        assert error.exit_code == 2
        assert error.problem["type"] == "https://docpublish.dev/problems/docs-build-failed"
        assert error.report is not None
        assert error.report.outcome("mkdocs").status is TaskStatus.FAILED
        assert error.report.outcome("deploy").status is TaskStatus.SKIPPED

    def test_plain_exception_is_wrapped(self) -> None:
        """Non-docpublish exceptions still produce Problem Details and exit code 1."""
        graph = TaskGraph()
        graph.add(Task("mkdocs", lambda _ctx: 1 / 0))

        with pytest.raises(TaskFailedError) as exc_info:
            TaskRunner(graph).run("mkdocs")

        error = exc_info.value
        assert error.exit_code == 1
        assert error.problem["exception_type"] == "ZeroDivisionError"
        assert isinstance(error.__cause__, ZeroDivisionError)

    def test_unknown_target_runs_nothing(self) -> None:
        """An invalid target fails before any task starts."""
        events: list[str] = []
        with pytest.raises(UnknownTaskError):
            TaskRunner(_recording_graph(events)).run("publish")
        assert events == []
