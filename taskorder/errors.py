class TaskOrderError(Exception):
    """Base class for faults surfaced to callers."""


class InvalidReorderError(TaskOrderError, ValueError):
    pass


class TaskNotFoundError(TaskOrderError, LookupError):
    def __init__(self, task_id: str):
        super().__init__(f"task not found: {task_id}")
        self.task_id = task_id


class TaskBlockedError(TaskOrderError):
    def __init__(self, task_id: str, gate_result):
        blocked = ', '.join(gate_result.blocked_by) or 'task is not executable'
        super().__init__(f"task {task_id} blocked: {blocked}")
        self.task_id = task_id
        self.gate_result = gate_result


class TaskDeleteError(TaskOrderError):
    pass


class StorageError(TaskOrderError):
    pass
