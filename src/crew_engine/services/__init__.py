"""Service layer driving crew runs end to end."""

from .runs import RunController, new_run_id

__all__ = ["RunController", "new_run_id"]
