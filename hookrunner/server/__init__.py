from .app import build_response, build_snapshot, create_app

__all__ = ["build_response", "build_snapshot", "create_app"]
