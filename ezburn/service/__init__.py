"""HTTP service mode for ezburn."""

from .app import create_app, run_service

__all__ = ["create_app", "run_service"]
