from . import jobs, taxonomy, tasks

__all__ = ["jobs", "taxonomy", "tasks"]
