from taskorder.errors import (
    InvalidReorderError,
    StorageError,
    TaskBlockedError,
    TaskDeleteError,
    TaskNotFoundError,
    TaskOrderError,
)
from taskorder.gate import ExecutionGate, GateResult
from taskorder.graph import DependencyGraph, GraphBuilder
from taskorder.parser import TaskNode, TaskParser, TaskStatus
from taskorder.reorder import ReorderLegalizer, ReorderResult
from taskorder.scheduler import OrderResult, TaskScheduler
from taskorder.service import TaskOrderService
from taskorder.store import MemoryTaskStore, TaskStore, YamlTaskStore

__version__ = "0.1.0"
