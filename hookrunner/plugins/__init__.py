"""Plugins - optional features that consume the event bus and mount HTTP routes."""
import logging
from dataclasses import dataclass
from pathlib import Path
from typing import Awaitable, Callable

from fastapi import FastAPI

from hookrunner.config import Settings
from hookrunner.event_bus import EventBus
from hookrunner.orchestrator.core import ProcessOrchestrator

logger = logging.getLogger("hookrunner.plugins")


@dataclass
class PluginContext:
    events: EventBus
    runner: ProcessOrchestrator
    app: FastAPI
    hooks_path: Path
    logs_path: Path
    settings: Settings


@dataclass(frozen=True)
class Plugin:
    name: str
    setup: Callable[[PluginContext], Awaitable[None] | None]
    version: str = "1"


def registry() -> dict[str, Plugin]:
    """All known plugins by name."""
    from hookrunner.plugins import health, history

    return {p.name: p for p in (health.plugin, history.plugin)}


def enabled_plugins(settings: Settings) -> list[Plugin]:
    """Plugins switched on in settings.plugins, in registry order."""
    return [p for name, p in registry().items() if getattr(settings.plugins, name, False)]


async def setup_plugins(plugins: list[Plugin], context: PluginContext) -> None:
    for p in plugins:
        logger.debug("Setup plugin %s...", p.name)
        result = p.setup(context)
        if result is not None:
            await result
