"""Application wiring for acmelib."""

from acmelib.app.factory import create_engine

__all__ = ["create_engine"]
