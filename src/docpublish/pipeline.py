"""Default task graph: ``mkdocs`` builds the site, ``deploy`` publishes it.

``deploy`` declares ``mkdocs`` as its only predecessor, so the runner never
starts the publisher unless the build succeeded. The snapshot handed to the
publisher is taken after the build, from the directory the builder reported.
"""

from __future__ import annotations

from typing import TYPE_CHECKING

from docpublish.builder import BuildResult, DocBuilder, MkDocsBuilder
from docpublish.publisher import GitPagesPublisher, collect_site_files
from docpublish.tasks import Task, TaskGraph

if TYPE_CHECKING:
    from docpublish.config import DeploySettings, PublishOptions
    from docpublish.publisher import PublishResult, Publisher
    from docpublish.tasks import TaskContext

__all__ = ["DEPLOY_TASK", "MKDOCS_TASK", "create_task_graph"]

MKDOCS_TASK = "mkdocs"
DEPLOY_TASK = "deploy"


def create_task_graph(
    settings: DeploySettings,
    options: PublishOptions,
    *,
    builder: DocBuilder | None = None,
    publisher: Publisher | None = None,
) -> TaskGraph:
    """Return the ``mkdocs`` / ``deploy`` graph wired to ``builder`` and ``publisher``.

    Parameters
    ----------
    settings : DeploySettings
        Project root, Output Directory and generator command.
    options : PublishOptions
        Options for the default publisher.
    builder : DocBuilder | None, optional
        Replaces the default :class:`MkDocsBuilder`.
    publisher : Publisher | None, optional
        Replaces the default :class:`GitPagesPublisher`.

    Returns
    -------
    TaskGraph
        Graph with both tasks registered.
    """
    doc_builder: DocBuilder = builder or MkDocsBuilder(
        project_root=settings.project_root,
        site_dir=settings.site_dir,
        command=settings.build_command,
        timeout=settings.build_timeout,
    )
    site_publisher: Publisher = publisher or GitPagesPublisher(
        options=options, project_root=settings.project_root
    )

    def run_mkdocs(_context: TaskContext) -> BuildResult:
        return doc_builder.build()

    def run_deploy(context: TaskContext) -> PublishResult:
        build = context.results[MKDOCS_TASK]
        if isinstance(build, BuildResult):
            site_dir = build.site_dir
        else:
            site_dir = settings.resolved_site_dir()
        return site_publisher.publish(collect_site_files(site_dir))

    graph = TaskGraph()
    graph.add(Task(MKDOCS_TASK, run_mkdocs, description="Build the documentation site"))
    graph.add(
        Task(
            DEPLOY_TASK,
            run_deploy,
            depends_on=(MKDOCS_TASK,),
            description=f"Publish the site to the '{options.branch}' branch",
        )
    )
    return graph
