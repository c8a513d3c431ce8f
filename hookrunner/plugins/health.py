"""Health plugin - process resource usage and live runs at GET /health."""
import shutil
import time

import psutil

from hookrunner.plugins import Plugin, PluginContext


def _health(ctx: PluginContext) -> dict:
    process = psutil.Process()
    cpu = process.cpu_times()
    mem = process.memory_info()
    health = {
        "uptime": round(time.time() - process.create_time(), 3),
        "cpuUsage": {"user": cpu.user, "system": cpu.system},
        "memoryUsage": {"rss": mem.rss, "vms": mem.vms},
        "threads": process.num_threads(),
        "diskFreeGb": None,
        "runs": [
            {"hookName": name, **handle.to_dict()}
            for name, handle in ctx.runner.live_runs().items()
        ],
    }
    try:
        health["diskFreeGb"] = round(shutil.disk_usage(ctx.logs_path).free / (1024**3), 2)
    except OSError:
        pass
    return health


def setup(ctx: PluginContext) -> None:
    @ctx.app.get("/health")
    async def health():
        return _health(ctx)


plugin = Plugin("health", setup)
