import asyncio
import os
import tempfile
import threading
from abc import ABC, abstractmethod
from pathlib import Path
from typing import Dict, Iterable, List, Optional

import yaml

from taskorder.errors import StorageError
from taskorder.parser import TaskNode, TaskParser


class TaskStore(ABC):
    """Snapshot provider: the only place tasks are read from or written to."""

    @abstractmethod
    async def load_project_tasks(self, project_id: str) -> List[TaskNode]:
        ...

    @abstractmethod
    async def load_all_tasks(self) -> List[TaskNode]:
        ...

    async def get_task(self, task_id: str) -> Optional[TaskNode]:
        for task in await self.load_all_tasks():
            if task.id == task_id:
                return task
        return None

    async def list_projects(self) -> List[str]:
        projects = []
        for task in await self.load_all_tasks():
            if task.project_id not in projects:
                projects.append(task.project_id)
        return projects

    @abstractmethod
    async def save_tasks(self, tasks: List[TaskNode], delete_ids: Iterable[str] = ()) -> None:
        """Upsert `tasks` and drop `delete_ids` in one all-or-nothing write."""


class MemoryTaskStore(TaskStore):
    def __init__(self, tasks: Iterable[TaskNode] = ()):
        self._tasks: Dict[str, TaskNode] = {}
        for task in tasks:
            self._tasks[task.id] = task.copy()
        self.fail_on_load = False
        self.fail_on_save = False
        self.save_count = 0

    async def load_project_tasks(self, project_id: str) -> List[TaskNode]:
        return [task for task in await self.load_all_tasks() if task.project_id == project_id]

    async def load_all_tasks(self) -> List[TaskNode]:
        if self.fail_on_load:
            raise StorageError("load failed")
        # yield like a real backend would
        await asyncio.sleep(0)
        return [task.copy() for task in self._tasks.values()]

    async def save_tasks(self, tasks: List[TaskNode], delete_ids: Iterable[str] = ()) -> None:
        await asyncio.sleep(0)
        if self.fail_on_save:
            raise StorageError("save failed")

        updated = dict(self._tasks)
        for task_id in delete_ids:
            updated.pop(task_id, None)
        for task in tasks:
            updated[task.id] = task.copy()

        self._tasks = updated
        self.save_count += 1


class YamlTaskStore(TaskStore):
    def __init__(self, path, logger):
        self.path = Path(path)
        self.logger = logger
        self.parser = TaskParser(logger)
        # one file holds every project, so writers must not interleave
        self._write_lock = threading.Lock()

    async def load_project_tasks(self, project_id: str) -> List[TaskNode]:
        return [task for task in await self.load_all_tasks() if task.project_id == project_id]

    async def load_all_tasks(self) -> List[TaskNode]:
        return await asyncio.to_thread(self._read)

    async def save_tasks(self, tasks: List[TaskNode], delete_ids: Iterable[str] = ()) -> None:
        await asyncio.to_thread(self._write, list(tasks), set(delete_ids))

    def _read(self) -> List[TaskNode]:
        if not self.path.exists() or self.path.stat().st_size == 0:
            return []
        try:
            return self.parser.load(str(self.path))
        except (OSError, ValueError) as e:
            raise StorageError(f"cannot read {self.path}: {e}") from e

    def _write(self, tasks: List[TaskNode], delete_ids) -> None:
        with self._write_lock:
            self._merge_and_replace(tasks, delete_ids)

    def _merge_and_replace(self, tasks: List[TaskNode], delete_ids) -> None:
        current = self._read()
        changes = {task.id: task for task in tasks}

        merged = []
        for task in current:
            if task.id in delete_ids:
                continue
            merged.append(changes.pop(task.id, task))
        merged.extend(task for task in tasks if task.id in changes)

        data = {'tasks': [TaskParser.dump(task) for task in merged]}

        # write next to the target and swap, so a failure keeps the old file
        tmp_path = None
        try:
            fd, tmp_path = tempfile.mkstemp(dir=self.path.parent, prefix='.taskorder-', suffix='.tmp')
            with os.fdopen(fd, 'w', encoding='utf-8') as f:
                yaml.safe_dump(data, f, sort_keys=False, allow_unicode=True)
            os.replace(tmp_path, self.path)
        except (OSError, yaml.YAMLError) as e:
            if tmp_path is not None and os.path.exists(tmp_path):
                os.unlink(tmp_path)
            raise StorageError(f"cannot write {self.path}: {e}") from e

        self.logger.debug(f"saved {len(merged)} tasks to {self.path}")
