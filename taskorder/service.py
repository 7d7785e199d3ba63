import asyncio
import inspect
import uuid
from datetime import datetime, timezone
from typing import Callable, Dict, Iterable, List, Optional

from taskorder.config import Settings
from taskorder.errors import TaskBlockedError, TaskDeleteError, TaskNotFoundError
from taskorder.gate import ExecutionGate, GateResult
from taskorder.parser import TaskNode, TaskStatus, normalize_dependencies
from taskorder.reorder import ReorderLegalizer
from taskorder.scheduler import TaskScheduler
from taskorder.store import TaskStore

# leaving one of these needs the gate's approval
GATED_FROM = (TaskStatus.PENDING, TaskStatus.BLOCKED)
GATED_TO = (TaskStatus.IN_PROGRESS, TaskStatus.COMPLETED)


class TaskOrderService:
    """Mutation entry points that keep each project's execution order legal.

    Every load -> compute -> save cycle for a project runs under that
    project's lock, so two mutations of the same project cannot clobber each
    other. Different projects never wait on each other.
    """

    def __init__(self, store: TaskStore, logger, settings: Optional[Settings] = None):
        self.store = store
        self.logger = logger
        self.settings = settings or Settings()
        self.scheduler = TaskScheduler(logger)
        self.legalizer = ReorderLegalizer(self.scheduler, logger)
        self.gate = ExecutionGate(logger, self.settings.missing_dependencies_block)
        self._locks: Dict[str, asyncio.Lock] = {}
        self._listeners: List[Callable] = []

    def project_lock(self, project_id: str) -> asyncio.Lock:
        lock = self._locks.get(project_id)
        if lock is None:
            lock = self._locks[project_id] = asyncio.Lock()
        return lock

    def subscribe(self, callback: Callable) -> None:
        self._listeners.append(callback)

    async def _notify(self, project_id: str) -> None:
        for callback in self._listeners:
            result = callback(project_id)
            if inspect.isawaitable(result):
                await result

    async def _require_task(self, task_id: str) -> TaskNode:
        task = await self.store.get_task(task_id)
        if task is None:
            raise TaskNotFoundError(task_id)
        return task

    def _log_order(self, project_id: str, ordered: List[TaskNode]) -> None:
        self.logger.info(f"order for {project_id}: {len(ordered)} tasks")
        for task in ordered[:10]:
            deps = ','.join(task.dependencies) or 'none'
            self.logger.debug(f"  [{task.execution_order}] {task.id} {task.name} (deps: {deps})")

    async def recalculate_order(self, project_id: str) -> List[TaskNode]:
        async with self.project_lock(project_id):
            tasks = await self.store.load_project_tasks(project_id)
            if not tasks:
                return []
            ordered = self.scheduler.recalculate(tasks)
            await self.store.save_tasks(ordered)

        self._log_order(project_id, ordered)
        await self._notify(project_id)
        return ordered

    async def recalculate_all(self) -> Dict[str, int]:
        projects = await self.store.list_projects()
        results = await asyncio.gather(*(self.recalculate_order(p) for p in projects))
        return {project: len(ordered) for project, ordered in zip(projects, results)}

    async def reorder_tasks(self, project_id: str, task_ids: Iterable[str]) -> List[TaskNode]:
        proposal = list(task_ids)
        async with self.project_lock(project_id):
            tasks = await self.store.load_project_tasks(project_id)
            result = self.legalizer.legalize(project_id, tasks, proposal)
            if not result.changed:
                return result.tasks
            await self.store.save_tasks(result.tasks)

        await self._notify(project_id)
        return result.tasks

    async def can_execute(self, task_id: str) -> GateResult:
        tasks = await self.store.load_all_tasks()
        return self.gate.check(task_id, tasks)

    async def create_task(
        self,
        project_id: str,
        name: str,
        dependencies: Iterable[str] = (),
        task_id: Optional[str] = None,
    ) -> TaskNode:
        task = TaskNode(
            id=task_id or str(uuid.uuid4()),
            project_id=project_id,
            dependencies=tuple(dependencies),
            name=name,
        )

        async with self.project_lock(project_id):
            if await self.store.get_task(task.id) is not None:
                raise ValueError(f"duplicate task: {task.id}")
            tasks = await self.store.load_project_tasks(project_id)
            ordered = self.scheduler.recalculate(tasks + [task])
            await self.store.save_tasks(ordered)

        self.logger.info(f"created {task.id} in {project_id}")
        self._log_order(project_id, ordered)
        await self._notify(project_id)
        return next(t for t in ordered if t.id == task.id)

    async def update_dependencies(self, task_id: str, dependencies: Iterable[str]) -> TaskNode:
        project_id = (await self._require_task(task_id)).project_id

        async with self.project_lock(project_id):
            tasks = await self.store.load_project_tasks(project_id)
            if not any(t.id == task_id for t in tasks):
                raise TaskNotFoundError(task_id)
            deps = normalize_dependencies(list(dependencies))
            updated = [t.copy(dependencies=deps) if t.id == task_id else t for t in tasks]
            ordered = self.scheduler.recalculate(updated)
            await self.store.save_tasks(ordered)

        self.logger.info(f"dependencies changed for {task_id}, order recalculated")
        self._log_order(project_id, ordered)
        await self._notify(project_id)
        return next(t for t in ordered if t.id == task_id)

    async def set_status(self, task_id: str, status) -> TaskNode:
        status = TaskStatus.parse(status)
        project_id = (await self._require_task(task_id)).project_id

        async with self.project_lock(project_id):
            current = await self._require_task(task_id)
            if current.status in GATED_FROM and status in GATED_TO:
                result = self.gate.check(task_id, await self.store.load_all_tasks())
                if not result.executable:
                    raise TaskBlockedError(task_id, result)

            updated = current.copy(status=status)
            if status is TaskStatus.COMPLETED:
                updated.extra['completed_at'] = datetime.now(timezone.utc).isoformat()
            await self.store.save_tasks([updated])

        self.logger.info(f"{task_id}: {current.status.value} -> {status.value}")
        await self._notify(project_id)
        return updated

    async def delete_task(self, task_id: str, force: bool = False) -> List[TaskNode]:
        project_id = (await self._require_task(task_id)).project_id

        async with self.project_lock(project_id):
            tasks = await self.store.load_project_tasks(project_id)
            target = next((t for t in tasks if t.id == task_id), None)
            if target is None:
                raise TaskNotFoundError(task_id)

            if not force:
                if target.status.is_terminal:
                    raise TaskDeleteError(f"cannot delete completed task {task_id}")
                dependents = [
                    t.id for t in await self.store.load_all_tasks()
                    if t.id != task_id and task_id in t.dependencies
                ]
                if dependents:
                    raise TaskDeleteError(
                        f"cannot delete {task_id}, dependent tasks: {', '.join(dependents)}"
                    )

            remaining = [t for t in tasks if t.id != task_id]
            ordered = self.scheduler.recalculate(remaining)
            await self.store.save_tasks(ordered, delete_ids=[task_id])

        self.logger.info(f"deleted {task_id} from {project_id}")
        self._log_order(project_id, ordered)
        await self._notify(project_id)
        return ordered
