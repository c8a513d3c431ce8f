"""CLI - run the hook server, read and write config/settings.yaml."""
import argparse
import logging
import sys
from pathlib import Path

from hookrunner.config import (
    get_value,
    load_config,
    read_settings_file,
    set_value,
    settings_path,
    write_settings_file,
)

LOG_FORMAT = "%(asctime)s %(levelname)-7s %(name)s: %(message)s"


def setup_logging(level: str) -> None:
    logging.basicConfig(level=level.upper(), format=LOG_FORMAT)


def _config_path(args: argparse.Namespace) -> Path:
    return Path(args.config) if args.config else settings_path()


def cmd_run(args: argparse.Namespace) -> None:
    """Serve hooks until interrupted."""
    import uvicorn

    from hookrunner.server.app import create_app

    settings = load_config(
        config_path=_config_path(args),
        overrides={
            "server": {"host": args.host, "port": args.port},
            "paths": {"hooks": args.hooks, "logs": args.logs},
            "plugins": {"health": args.health, "history": args.history},
            "logging": {"level": args.level},
        },
    )
    setup_logging(settings.logging.level)
    app = create_app(settings)
    uvicorn.run(
        app,
        host=settings.server.host,
        port=settings.server.port,
        log_level=settings.logging.level.lower(),
    )


def cmd_config_get(args: argparse.Namespace) -> None:
    print(get_value(read_settings_file(_config_path(args)), args.key))


def cmd_config_set(args: argparse.Namespace) -> None:
    value = " ".join(args.value)
    if not value:
        print("config set requires a value")
        sys.exit(1)
    path = _config_path(args)
    data = set_value(read_settings_file(path), args.key, value)
    write_settings_file(path, data)
    print(f"Set {args.key} = {value}")


def _add_run_options(p: argparse.ArgumentParser) -> None:
    p.add_argument("--host", default=None, help="host to listen on (default 0.0.0.0)")
    p.add_argument("--port", type=int, default=None, help="port to listen on (default 3000)")
    p.add_argument("--hooks", default=None, help="hooks path (default ./hooks)")
    p.add_argument("--logs", default=None, help="logs path (default ./logs)")
    p.add_argument("--level", default=None, choices=["debug", "info", "warning", "error"], help="logging level")
    p.add_argument("--no-health", dest="health", action="store_const", const=False, default=None, help="disable the health plugin")
    p.add_argument("--no-history", dest="history", action="store_const", const=False, default=None, help="disable the history plugin")


COMMANDS = ("run", "config")


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(prog="hookrunner", description="Run local commands from webhooks")
    sub = parser.add_subparsers(dest="cmd")

    run = sub.add_parser("run", help="Serve hooks (default)")
    run.add_argument("--config", default=None, help="settings file (default ./config/settings.yaml)")
    _add_run_options(run)
    cfg = sub.add_parser("config", help="Get/set config")
    cfg.add_argument("--config", default=None, help="settings file (default ./config/settings.yaml)")
    cfg.add_argument("action", choices=["get", "set"])
    cfg.add_argument("key")
    cfg.add_argument("value", nargs="*", default=[])
    return parser


def main(argv: list[str] | None = None) -> None:
    argv = list(sys.argv[1:] if argv is None else argv)
    # bare options mean "run"
    if not argv or argv[0] not in (*COMMANDS, "-h", "--help"):
        argv.insert(0, "run")
    args = build_parser().parse_args(argv)
    if args.cmd == "config":
        if args.action == "get":
            cmd_config_get(args)
        else:
            cmd_config_set(args)
    else:
        cmd_run(args)


if __name__ == "__main__":
    main()
