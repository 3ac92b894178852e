from . import dashboard, itineraries, jobs, tasks

__all__ = ["dashboard", "itineraries", "jobs", "tasks"]
