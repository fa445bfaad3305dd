"""
Custody Scheduler API module.

FastAPI endpoints for activity writes, availability and conflict triage.
"""

from custody_scheduler.api.main import app, run_server

__all__ = ["app", "run_server"]
