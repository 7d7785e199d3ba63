from collections import Counter
from dataclasses import dataclass, field
from typing import Dict, List, Sequence

from taskorder.errors import InvalidReorderError
from taskorder.parser import TaskNode


@dataclass
class ReorderResult:
    tasks: List[TaskNode]
    changed: bool = True
    ignored_ids: List[str] = field(default_factory=list)


class ReorderLegalizer:
    """Turns a manual (drag and drop) order into the closest legal order.

    The proposal is never applied verbatim. It only re-seeds the tie-break
    keys of the tasks it names, and the scheduler then produces an order that
    respects every dependency. A partial proposal is packed in request order
    starting at the earliest rank any of its tasks holds. Tasks it does not
    mention keep their rank; a tie with a proposed task goes to whichever
    was created first.
    """

    def __init__(self, scheduler, logger):
        self.scheduler = scheduler
        self.logger = logger

    def legalize(self, project_id: str, tasks: List[TaskNode], proposal: Sequence[str]) -> ReorderResult:
        duplicates = sorted(task_id for task_id, count in Counter(proposal).items() if count > 1)
        if duplicates:
            raise InvalidReorderError(f"invalid reorder: duplicate id {', '.join(duplicates)}")

        project_tasks = [task for task in tasks if task.project_id == project_id]
        known = {task.id for task in project_tasks}
        requested = [task_id for task_id in proposal if task_id in known]
        ignored = [task_id for task_id in proposal if task_id not in known]

        if ignored:
            self.logger.warning(f"reorder {project_id}: ignoring unknown tasks {', '.join(ignored)}")

        current = sorted(project_tasks, key=self.scheduler.tie_break_key)

        if len(requested) < 2:
            self.logger.info(f"reorder {project_id}: nothing to reorder")
            return ReorderResult(tasks=current, changed=False, ignored_ids=ignored)

        seeds = self.build_seeds(current, requested)
        ordered = self.scheduler.recalculate(project_tasks, seeds=seeds)

        self.logger.info(
            f"reorder {project_id}: {len(requested)} of {len(ordered)} tasks moved, "
            f"result {', '.join(task.id for task in ordered)}"
        )
        return ReorderResult(tasks=ordered, ignored_ids=ignored)

    @staticmethod
    def build_seeds(current: List[TaskNode], requested: List[str]) -> Dict[str, int]:
        """Rank every task, then number the requested ones from their earliest rank."""
        seeds = {task.id: rank for rank, task in enumerate(current)}
        start = min(seeds[task_id] for task_id in requested)
        for offset, task_id in enumerate(requested):
            seeds[task_id] = start + offset
        return seeds
