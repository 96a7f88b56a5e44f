"""specorch: a self-correcting orchestrator for spec-driven task execution.

A spec directory holds ``requirements.md``, ``design.md`` and ``tasks.md``.
specorch runs the tasks in dependency order, and when a task's tests fail it
classifies the failure, records a correction in the spec and retries the task,
up to a fixed number of attempts (the Ralph-Loop).

Usage:
    # CLI
    $ specorch status specs/my-feature
    $ specorch run specs/my-feature --test-command "pytest -k {task_id}"

    # Python API
    from specorch import Orchestrator
    from specorch.sandbox import CommandTestRunner

    orchestrator = Orchestrator("specs/my-feature", CommandTestRunner("make test"))
    summary = await orchestrator.run()
"""

try:
    from importlib.metadata import version as _get_version

    __version__ = _get_version("specorch")
except Exception:
    __version__ = "0.0.0-dev"


# Core exports (lazy imports for faster startup)
def __getattr__(name: str):
    """Lazy import for main classes."""
    if name == "Orchestrator":
        from .orchestrator import Orchestrator

        return Orchestrator
    if name == "RunSummary":
        from .orchestrator import RunSummary

        return RunSummary
    if name == "TaskManager":
        from .tasks.manager import TaskManager

        return TaskManager
    if name == "RalphLoop":
        from .correction.loop import RalphLoop

        return RalphLoop
    if name == "Config":
        from .core.config import Config

        return Config
    raise AttributeError(f"module {__name__!r} has no attribute {name!r}")


__all__ = [
    "__version__",
    "Orchestrator",
    "RunSummary",
    "TaskManager",
    "RalphLoop",
    "Config",
]
