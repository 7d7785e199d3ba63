import yaml
from dataclasses import dataclass, field, replace
from datetime import date, datetime, timezone
from enum import Enum
from pathlib import Path
from typing import Any, Dict, Iterable, List, Optional, Tuple


class TaskStatus(Enum):
    PENDING = "pending"
    IN_PROGRESS = "in_progress"
    COMPLETED = "completed"
    BLOCKED = "blocked"

    @classmethod
    def parse(cls, value) -> "TaskStatus":
        if isinstance(value, cls):
            return value
        if value is None:
            return cls.PENDING
        normalized = str(value).strip().lower().replace('-', '_').replace(' ', '_')
        try:
            return cls(normalized)
        except ValueError:
            raise ValueError(f"unknown task status: {value!r}")

    @property
    def is_terminal(self) -> bool:
        return self is TaskStatus.COMPLETED


@dataclass
class TaskNode:
    id: str
    project_id: str
    dependencies: Tuple[str, ...] = ()
    status: TaskStatus = TaskStatus.PENDING
    execution_order: Optional[int] = None
    created_at: Optional[datetime] = None
    name: str = ""
    extra: Dict[str, Any] = field(default_factory=dict)

    def __post_init__(self):
        self.dependencies = normalize_dependencies(self.dependencies)
        self.status = TaskStatus.parse(self.status)
        self.created_at = parse_timestamp(self.created_at)

    def copy(self, **changes) -> "TaskNode":
        changes.setdefault('extra', dict(self.extra))
        return replace(self, **changes)


def normalize_dependencies(raw) -> Tuple[str, ...]:
    """Reduce bare ids and {taskId: ...} mappings to a tuple of unique ids."""
    if raw is None:
        return ()
    if isinstance(raw, (str, dict)):
        raw = [raw]

    seen = []
    for dep in raw:
        if isinstance(dep, dict):
            dep = dep.get('taskId', dep.get('task_id', dep.get('id')))
        if dep is None:
            continue
        dep = str(dep).strip()
        if dep and dep not in seen:
            seen.append(dep)
    return tuple(seen)


def parse_timestamp(value) -> datetime:
    if value is None or value == "":
        return datetime.now(timezone.utc)
    if isinstance(value, datetime):
        parsed = value
    elif isinstance(value, date):
        parsed = datetime(value.year, value.month, value.day)
    else:
        text = str(value).strip()
        if text.endswith('Z'):
            text = text[:-1] + '+00:00'
        try:
            parsed = datetime.fromisoformat(text)
        except ValueError:
            raise ValueError(f"bad timestamp: {value!r}")
    # naive and aware values must stay comparable
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=timezone.utc)
    return parsed


def _parse_order(value) -> Optional[int]:
    if value is None or isinstance(value, bool):
        return None
    order = int(value)
    return order if order >= 0 else None


_KNOWN_FIELDS = {
    'id', 'project', 'project_id', 'projectId', 'dependencies', 'depends_on',
    'status', 'execution_order', 'executionOrder', 'created_at', 'createdAt', 'name',
}


class TaskParser:
    def __init__(self, logger):
        self.logger = logger

    def parse_record(self, data: Dict[str, Any], default_project: Optional[str] = None) -> TaskNode:
        if not isinstance(data, dict) or 'id' not in data:
            raise ValueError("task missing id")

        project_id = data.get('project_id', data.get('projectId', data.get('project', default_project)))
        if project_id is None:
            raise ValueError(f"task {data['id']} has no project")

        dependencies = data.get('dependencies')
        if dependencies is None:
            dependencies = data.get('depends_on')

        return TaskNode(
            id=str(data['id']),
            project_id=str(project_id),
            dependencies=dependencies,
            status=data.get('status'),
            execution_order=_parse_order(data.get('execution_order', data.get('executionOrder'))),
            created_at=data.get('created_at', data.get('createdAt')),
            name=str(data.get('name') or ""),
            extra={k: v for k, v in data.items() if k not in _KNOWN_FIELDS},
        )

    def parse(self, records: Iterable[Dict[str, Any]], default_project: Optional[str] = None) -> List[TaskNode]:
        tasks = []
        task_ids = set()

        for record in records:
            task = self.parse_record(record, default_project)
            if task.id in task_ids:
                raise ValueError(f"duplicate task: {task.id}")
            task_ids.add(task.id)
            tasks.append(task)

        self.logger.debug(f"parsed {len(tasks)} tasks")
        return tasks

    def load(self, path: str) -> List[TaskNode]:
        file_path = Path(path)

        if not file_path.exists():
            raise FileNotFoundError(f"file not found: {path}")

        try:
            with open(file_path, 'r', encoding='utf-8') as f:
                data = yaml.safe_load(f) or {}
        except yaml.YAMLError as e:
            raise ValueError(f"bad yaml: {e}")

        if not isinstance(data, dict) or 'tasks' not in data:
            raise ValueError("no tasks found")

        return self.parse(data['tasks'] or [], default_project=data.get('project'))

    @staticmethod
    def dump(task: TaskNode) -> Dict[str, Any]:
        record = {
            'id': task.id,
            'project': task.project_id,
            'name': task.name,
            'status': task.status.value,
            'dependencies': list(task.dependencies),
            'execution_order': task.execution_order,
            'created_at': task.created_at.isoformat(),
        }
        record.update(task.extra)
        return record
