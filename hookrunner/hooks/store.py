"""Hook store - locates hook definition files and loads them (no caching)."""
import logging
from pathlib import Path

from pydantic import ValidationError

from hookrunner.hooks.models import HookDefinition, HookDefinitionError

logger = logging.getLogger("hookrunner.store")


def candidate_paths(hooks_root: Path, hook_name: str) -> list[Path]:
    """Definition locations for a hook name, in lookup order."""
    root = Path(hooks_root)
    return [
        root / hook_name / "index.json",
        root / hook_name / "hook.json",
        root / f"{hook_name}.json",
    ]


def _inside(path: Path, root: Path) -> bool:
    try:
        path.resolve().relative_to(root.resolve())
    except ValueError:
        return False
    return True


def resolve_hook_path(hooks_root: Path, hook_name: str) -> Path | None:
    """First existing definition file for hook_name, or None.

    None is a routing miss, not a failure. Names that would leave the hooks
    root are treated the same way.
    """
    if not hook_name or "\x00" in hook_name:
        return None
    # "." or "a//b" would share a log directory with another hook
    if any(part in ("", ".", "..") for part in hook_name.split("/")):
        return None
    root = Path(hooks_root)
    for path in candidate_paths(root, hook_name):
        if not _inside(path, root):
            return None
        if path.is_file():
            return path
    return None


def load_hook(path: Path) -> HookDefinition:
    """Read and validate a definition file. Raises HookDefinitionError."""
    path = Path(path)
    try:
        text = path.read_text(encoding="utf-8")
    except OSError as e:
        raise HookDefinitionError(f"Cannot read hook definition {path}: {e}", path) from e
    try:
        return HookDefinition.model_validate_json(text)
    except ValidationError as e:
        raise HookDefinitionError(f"Invalid hook definition {path}: {e}", path) from e


def working_directory(definition: HookDefinition, path: Path) -> Path:
    """Directory the hook's commands run in."""
    base = Path(path).parent
    if not definition.workingDirectory:
        return base
    wd = Path(definition.workingDirectory).expanduser()
    return wd if wd.is_absolute() else base / wd
