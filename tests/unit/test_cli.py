"""Tests for the docpublish command line."""

from __future__ import annotations

from pathlib import Path
from typing import TYPE_CHECKING

import pytest
from typer.testing import CliRunner

from docpublish import cli
from docpublish._shared.cli import decode_cli_envelope
from docpublish.pipeline import create_task_graph
from tests.doubles import RecordingPublisher, WritingBuilder

if TYPE_CHECKING:
    from docpublish.config import DeploySettings, PublishOptions
    from docpublish.tasks import TaskGraph
    from tests.doubles import FakeRunner

SITE_FILES = {"index.html": "<h1>Docs</h1>", "style.css": "body { margin: 0 }"}


class _Doubles:
    """Patches cli.create_task_graph to use test doubles and records the options."""

    def __init__(self, monkeypatch: pytest.MonkeyPatch, *, fail_with: int | None = None) -> None:
        self.publisher = RecordingPublisher()
        self.builders: list[WritingBuilder] = []
        self.options: list[PublishOptions] = []
        self.fail_with = fail_with
        monkeypatch.setattr(cli, "create_task_graph", self._create)

    def _create(self, settings: DeploySettings, options: PublishOptions) -> TaskGraph:
        builder = WritingBuilder(
            site_dir=settings.resolved_site_dir(), files=SITE_FILES, fail_with=self.fail_with
        )
        self.builders.append(builder)
        self.options.append(options)
        return create_task_graph(settings, options, builder=builder, publisher=self.publisher)


@pytest.fixture
def runner() -> CliRunner:
    return CliRunner()


class TestDeployCommand:
    """Tests for 'docpublish deploy'."""

    def test_builds_then_publishes_exactly_the_built_files(
        self, runner: CliRunner, tmp_path: Path, monkeypatch: pytest.MonkeyPatch
    ) -> None:
        """The publisher receives index.html and style.css and the command exits 0."""
        doubles = _Doubles(monkeypatch)

        result = runner.invoke(cli.app, ["--project-root", str(tmp_path), "deploy"])

        assert result.exit_code == 0, result.output
        (snapshot,) = doubles.publisher.snapshots
        assert snapshot.files == ("index.html", "style.css")
        assert snapshot.site_dir == tmp_path / "site"
        assert "deploy: 2 files pushed to origin/gh-pages" in result.output

    def test_push_defaults_to_true(
        self, runner: CliRunner, tmp_path: Path, monkeypatch: pytest.MonkeyPatch
    ) -> None:
        """Without flags or environment the publish options push."""
        doubles = _Doubles(monkeypatch)

        runner.invoke(cli.app, ["--project-root", str(tmp_path), "deploy"])

        assert doubles.options[0].push is True

    def test_flags_override_publish_options(
        self, runner: CliRunner, tmp_path: Path, monkeypatch: pytest.MonkeyPatch
    ) -> None:
        """--no-push and friends reach PublishOptions."""
        doubles = _Doubles(monkeypatch)

        result = runner.invoke(
            cli.app,
            [
                "--project-root",
                str(tmp_path),
                "deploy",
                "--no-push",
                "--branch",
                "pages",
                "--remote",
                "upstream",
                "--message",
                "Docs {timestamp}",
            ],
        )

        assert result.exit_code == 0, result.output
        options = doubles.options[0]
        assert options.push is False
        assert options.branch == "pages"
        assert options.remote == "upstream"
        assert options.message == "Docs {timestamp}"

    def test_environment_disables_push(
        self, runner: CliRunner, tmp_path: Path, monkeypatch: pytest.MonkeyPatch
    ) -> None:
        """DOCPUBLISH_PUSH=false is honoured when no flag is given."""
        monkeypatch.setenv("DOCPUBLISH_PUSH", "false")
        doubles = _Doubles(monkeypatch)

        runner.invoke(cli.app, ["--project-root", str(tmp_path), "deploy"])

        assert doubles.options[0].push is False

    def test_build_failure_exits_with_generator_status(
        self, runner: CliRunner, tmp_path: Path, monkeypatch: pytest.MonkeyPatch
    ) -> None:
        """A failing build makes deploy exit non-zero without publishing."""
        doubles = _Doubles(monkeypatch, fail_with=3)

        result = runner.invoke(cli.app, ["--project-root", str(tmp_path), "deploy"])

        assert result.exit_code == 3
        assert doubles.publisher.snapshots == []
        assert "Documentation build failed" in result.output
        assert "docs-build-failed" in result.output

    def test_invalid_branch_is_a_configuration_error(
        self, runner: CliRunner, tmp_path: Path, monkeypatch: pytest.MonkeyPatch
    ) -> None:
        """Invalid options exit with code 2 before the build starts."""
        doubles = _Doubles(monkeypatch)

        result = runner.invoke(
            cli.app, ["--project-root", str(tmp_path), "deploy", "--branch", "refs/heads/x"]
        )

        assert result.exit_code == 2
        assert doubles.builders == []
        assert "settings-invalid" in result.output

    def test_invalid_environment_is_a_configuration_error(
        self, runner: CliRunner, tmp_path: Path, monkeypatch: pytest.MonkeyPatch
    ) -> None:
        """Malformed DOCPUBLISH_* variables exit with code 2."""
        monkeypatch.setenv("DOCPUBLISH_BUILD_TIMEOUT", "-1")
        doubles = _Doubles(monkeypatch)

        result = runner.invoke(cli.app, ["--project-root", str(tmp_path), "deploy"])

        assert result.exit_code == 2
        assert doubles.builders == []


class TestEnvelope:
    """Tests for --envelope run summaries."""

    def test_success_envelope(
        self, runner: CliRunner, tmp_path: Path, monkeypatch: pytest.MonkeyPatch
    ) -> None:
        """A successful run records both tasks and the published files."""
        _Doubles(monkeypatch)
        envelope_path = tmp_path / "out" / "run.json"

        result = runner.invoke(
            cli.app,
            ["--project-root", str(tmp_path), "--envelope", str(envelope_path), "deploy"],
        )

        assert result.exit_code == 0, result.output
        envelope = decode_cli_envelope(envelope_path.read_bytes())
        assert envelope.status == "success"
        assert envelope.target == "deploy"
        assert [(task.name, task.status) for task in envelope.tasks] == [
            ("mkdocs", "succeeded"),
            ("deploy", "succeeded"),
        ]
        assert envelope.files == ["index.html", "style.css"]

    def test_failure_envelope(
        self, runner: CliRunner, tmp_path: Path, monkeypatch: pytest.MonkeyPatch
    ) -> None:
        """A failed build is recorded with Problem Details and a skipped deploy."""
        _Doubles(monkeypatch, fail_with=1)
        envelope_path = tmp_path / "run.json"

        runner.invoke(
            cli.app,
            ["--project-root", str(tmp_path), "--envelope", str(envelope_path), "deploy"],
        )

        envelope = decode_cli_envelope(envelope_path.read_bytes())
        assert envelope.status == "error"
        assert [task.status for task in envelope.tasks] == ["failed", "skipped"]
        assert isinstance(envelope.problem, dict)
        assert envelope.problem["returncode"] == 1


class TestWithRecordingRunner:
    """End-to-end runs through the real builder and publisher with git recorded."""

    def test_deploy_without_push_stays_local(
        self, runner: CliRunner, tmp_path: Path, installed_runner: FakeRunner
    ) -> None:
        """--no-push stages the build in the cache repository with no fetch or push."""

        def write_site(cwd: Path | None) -> None:
            assert cwd is not None
            for name, content in SITE_FILES.items():
                target = cwd / "site" / name
                target.parent.mkdir(parents=True, exist_ok=True)
                target.write_text(content, encoding="utf-8")

        installed_runner.respond(("mkdocs", "build"), effect=write_site)
        installed_runner.respond(("git", "status"), stdout="A  index.html\nA  style.css\n")

        result = runner.invoke(cli.app, ["--project-root", str(tmp_path), "deploy", "--no-push"])

        assert result.exit_code == 0, result.output
        assert installed_runner.calls[0] == ("mkdocs", "build")
        subcommands = installed_runner.git_subcommands()
        assert "commit" in subcommands
        assert "fetch" not in subcommands
        assert "push" not in subcommands
        assert sorted(path.name for path in (tmp_path / ".publish").iterdir()) == [
            "index.html",
            "style.css",
        ]
        assert "staged for origin/gh-pages" in result.output

    def test_missing_output_fails_without_git(
        self, runner: CliRunner, tmp_path: Path, installed_runner: FakeRunner
    ) -> None:
        """A build that leaves no Output Directory fails deploy before any git command."""
        result = runner.invoke(cli.app, ["--project-root", str(tmp_path), "deploy"])

        assert result.exit_code == 1
        assert installed_runner.calls == [("mkdocs", "build")]
        assert "Nothing to publish" in result.output

    def test_mkdocs_command_only_builds(
        self, runner: CliRunner, tmp_path: Path, installed_runner: FakeRunner
    ) -> None:
        """'docpublish mkdocs' runs the generator and nothing else."""
        result = runner.invoke(cli.app, ["--project-root", str(tmp_path), "mkdocs"])

        assert result.exit_code == 0, result.output
        assert installed_runner.calls == [("mkdocs", "build")]
        assert "mkdocs: built site into" in result.output


class TestMiscCommands:
    """Tests for the remaining command-line surface."""

    def test_tasks_lists_graph(self, runner: CliRunner, tmp_path: Path) -> None:
        """'docpublish tasks' shows both tasks and the deploy dependency."""
        result = runner.invoke(cli.app, ["--project-root", str(tmp_path), "tasks"])

        assert result.exit_code == 0, result.output
        assert "mkdocs" in result.output
        assert "deploy (after: mkdocs)" in result.output

    def test_unknown_log_level(self, runner: CliRunner) -> None:
        """An unknown --log-level is a usage error."""
        result = runner.invoke(cli.app, ["--log-level", "LOUD", "tasks"])

        assert result.exit_code == 2
