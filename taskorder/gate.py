from dataclasses import dataclass, field
from typing import Dict, Iterable, List, Mapping, Union

from taskorder.parser import TaskNode


@dataclass
class GateResult:
    task_id: str
    executable: bool
    blocked_by: List[str] = field(default_factory=list)
    missing: List[str] = field(default_factory=list)
    found: bool = True

    def to_dict(self) -> Dict:
        return {'executable': self.executable, 'blockedBy': list(self.blocked_by)}


class ExecutionGate:
    """Decides whether a task may leave `pending`.

    Only dependency status matters here; execution order is never consulted.
    Dependencies may point into other projects, so the lookup should hold
    every known task, not just one project's snapshot.
    """

    def __init__(self, logger, missing_dependencies_block: bool = True):
        self.logger = logger
        self.missing_dependencies_block = missing_dependencies_block

    def check(self, task_id: str, tasks: Union[Mapping[str, TaskNode], Iterable[TaskNode]]) -> GateResult:
        if not isinstance(tasks, Mapping):
            tasks = {task.id: task for task in tasks}

        task = tasks.get(task_id)
        if task is None:
            self.logger.warning(f"{task_id}: not found")
            return GateResult(task_id, executable=False, found=False)

        if task.status.is_terminal:
            return GateResult(task_id, executable=False)

        blocked_by = []
        missing = []
        for dep in task.dependencies:
            if dep == task_id:
                continue
            dependency = tasks.get(dep)
            if dependency is None:
                missing.append(dep)
                if self.missing_dependencies_block:
                    blocked_by.append(dep)
            elif not dependency.status.is_terminal:
                blocked_by.append(dep)

        if missing:
            self.logger.warning(f"{task_id}: depends on missing tasks {', '.join(missing)}")
        if blocked_by:
            self.logger.info(f"{task_id}: blocked by {', '.join(blocked_by)}")

        return GateResult(task_id, executable=not blocked_by, blocked_by=blocked_by, missing=missing)
