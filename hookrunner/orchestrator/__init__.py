from .core import ProcessOrchestrator, RunHandle, RunResult
from .dispatch import DispatchResult, DispatchState, Dispatcher, EngineClosedError

__all__ = [
    "ProcessOrchestrator",
    "RunHandle",
    "RunResult",
    "DispatchResult",
    "DispatchState",
    "Dispatcher",
    "EngineClosedError",
]
