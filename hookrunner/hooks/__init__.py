from .models import (
    HookDefinition,
    HookDefinitionError,
    HookEvents,
    HookResponse,
    HookRunnerError,
    RequestSnapshot,
    RuleError,
)
from .rules import Predicate, compile_rules
from .store import load_hook, resolve_hook_path, working_directory
from .template import render

__all__ = [
    "HookDefinition",
    "HookDefinitionError",
    "HookEvents",
    "HookResponse",
    "HookRunnerError",
    "RequestSnapshot",
    "RuleError",
    "Predicate",
    "compile_rules",
    "load_hook",
    "resolve_hook_path",
    "working_directory",
    "render",
]
