from bootforge.core.config.models import ExecutionContext

from .base import ExecutionBackend
from .container import ContainerBackend
from .local import LocalBackend


def backend_for(ctx: ExecutionContext) -> ExecutionBackend:
    if ctx.exec_backend == "container":
        return ContainerBackend(runtime=ctx.get("CONTAINER_RUNTIME") or "docker")
    return LocalBackend()


__all__ = ["ContainerBackend", "ExecutionBackend", "LocalBackend", "backend_for"]
