"""
Custody Scheduler.

Scheduling conflict detection and resolution for activities held for persons
in custody: court hearings, visits and program sessions.
"""

__version__ = "0.1.0"
