from __future__ import annotations

from dataclasses import dataclass

from rich.console import Console

from custodia.application.runtime import Runtime, build_runtime
from custodia.application.services.project_service import ProjectService
from custodia.core.config import AppPaths
from custodia.core.errors import ProjectNotInitializedError


@dataclass(slots=True)
class CLIContext:
    paths: AppPaths
    console: Console


def require_runtime(ctx: CLIContext) -> Runtime:
    project_service = ProjectService(ctx.paths)
    if not project_service.is_initialized():
        raise ProjectNotInitializedError(
            f"Project is not initialized. Run 'custodia init' first in {ctx.paths.project_root}"
        )
    project_service.init_project()
    return build_runtime(ctx.paths)
