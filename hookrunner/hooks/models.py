"""Hook models - definition file shape, request snapshot, errors."""
import copy
from dataclasses import dataclass, field
from typing import Any

from pydantic import BaseModel, ConfigDict


class HookRunnerError(Exception):
    """Base class for hookrunner failures."""


class HookDefinitionError(HookRunnerError):
    """Definition file could not be read or does not describe a hook."""

    def __init__(self, message: str, path: Any = None):
        super().__init__(message)
        self.path = path


class RuleError(HookDefinitionError):
    """A rule uses an unknown operator or an operand of the wrong type."""


class HookResponse(BaseModel):
    """Static reply sent for every matched request."""

    model_config = ConfigDict(extra="ignore")
    statusCode: int | None = None
    contentType: str | None = None
    headers: dict[str, Any] | None = None
    body: Any = None


class HookEvents(BaseModel):
    """Command templates fired as detached side effects of a run."""

    model_config = ConfigDict(extra="ignore")
    run: str | None = None
    exit: str | None = None
    error: str | None = None

    def get(self, kind: str) -> str | None:
        return getattr(self, kind, None)


class HookDefinition(BaseModel):
    """One hook, as written in index.json / hook.json / <name>.json."""

    model_config = ConfigDict(extra="ignore")
    command: str
    rules: dict[str, Any] | None = None
    workingDirectory: str | None = None
    shell: bool | str | None = None
    response: HookResponse | None = None
    events: HookEvents | None = None


@dataclass(frozen=True)
class RequestSnapshot:
    """Point-in-time view of an inbound request. Matched against rules and used
    as the template context of the hook's command."""

    method: str
    url: str
    hostname: str = ""
    ip: str = ""
    headers: dict[str, str] = field(default_factory=dict)
    query: dict[str, str] = field(default_factory=dict)
    body: Any = None

    def as_context(self) -> dict[str, Any]:
        """Return a detached copy usable as rule/template input."""
        return {
            "body": copy.deepcopy(self.body),
            "headers": dict(self.headers),
            "hostname": self.hostname,
            "ip": self.ip,
            "method": self.method,
            "query": dict(self.query),
            "url": self.url,
        }
