"""
Example API used to exercise the log and metrics pipelines.
"""

from .app import create_app

__all__ = ["create_app"]
