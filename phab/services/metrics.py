from collections.abc import Iterable

from phab.models.maniphest import Task


def count_done_tasks(tasks: Iterable[Task], done_statuses: set[str]) -> int:
    """Count tasks whose status is one of ``done_statuses``."""
    return sum(1 for task in tasks if task.status in done_statuses)
