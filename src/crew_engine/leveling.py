from __future__ import annotations

from dataclasses import dataclass, field

from crew_engine.logger import get_logger
from crew_engine.models import Task

logger = get_logger(__name__)


@dataclass
class TaskLevel:
    index: int
    tasks: list[Task]
    forced: bool = False
    unresolved: dict[str, list[str]] = field(default_factory=dict)

    @property
    def task_ids(self) -> list[str]:
        return [task.id for task in self.tasks]


def compute_task_levels(tasks: list[Task]) -> list[TaskLevel]:
    """Group tasks into waves whose dependencies all live in earlier waves.

    A pass that places nothing (a cycle, or a dependency on an id that is not in
    the crew) pushes every remaining task into one final ``forced`` level, so the
    leveling always terminates. Within a level, tasks keep declaration order.
    """
    levels: list[TaskLevel] = []
    placed: set[str] = set()
    remaining = list(tasks)

    while remaining:
        ready = [task for task in remaining if all(dep in placed for dep in task.depends_on)]
        if ready:
            levels.append(TaskLevel(index=len(levels), tasks=ready))
            ready_ids = {task.id for task in ready}
            remaining = [task for task in remaining if task.id not in ready_ids]
            placed |= ready_ids
            continue

        unresolved = {
            task.id: [dep for dep in task.depends_on if dep not in placed] for task in remaining
        }
        logger.warning(
            "task_levels_forced",
            level=len(levels),
            task_ids=[task.id for task in remaining],
            unresolved=unresolved,
        )
        levels.append(
            TaskLevel(index=len(levels), tasks=remaining, forced=True, unresolved=unresolved)
        )
        break

    return levels
