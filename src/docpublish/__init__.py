"""Build documentation with an external generator and publish it to a hosting branch.

The public API mirrors the two tasks exposed by the ``docpublish`` CLI:

>>> from docpublish import create_task_graph, load_deploy_settings, TaskRunner
>>> settings = load_deploy_settings()
>>> graph = create_task_graph(settings, settings.publish_options(push=False))
>>> graph.plan("deploy")
('mkdocs', 'deploy')
"""

from __future__ import annotations

from docpublish.builder import BuildResult, DocBuilder, MkDocsBuilder
from docpublish.config import DeploySettings, PublishOptions, load_deploy_settings
from docpublish.errors import (
    BuildFailedError,
    DocPublishError,
    NothingToPublishError,
    PublishError,
    PublishTransportError,
    TaskCycleError,
    TaskFailedError,
    TaskGraphError,
    UnknownTaskError,
)
from docpublish.pipeline import DEPLOY_TASK, MKDOCS_TASK, create_task_graph
from docpublish.publisher import (
    GitPagesPublisher,
    PublishResult,
    Publisher,
    SiteSnapshot,
    collect_site_files,
)
from docpublish.tasks import RunReport, Task, TaskContext, TaskGraph, TaskRunner, TaskStatus

__version__ = "0.1.0"

__all__ = [
    "DEPLOY_TASK",
    "MKDOCS_TASK",
    "BuildFailedError",
    "BuildResult",
    "DeploySettings",
    "DocBuilder",
    "DocPublishError",
    "GitPagesPublisher",
    "MkDocsBuilder",
    "NothingToPublishError",
    "PublishError",
    "PublishOptions",
    "PublishResult",
    "PublishTransportError",
    "Publisher",
    "RunReport",
    "SiteSnapshot",
    "Task",
    "TaskContext",
    "TaskCycleError",
    "TaskFailedError",
    "TaskGraph",
    "TaskGraphError",
    "TaskRunner",
    "TaskStatus",
    "UnknownTaskError",
    "__version__",
    "collect_site_files",
    "create_task_graph",
    "load_deploy_settings",
]
