"""Shared test fixtures."""

from datetime import datetime, timedelta, timezone

import pytest

from taskorder.logger import OrderLogger
from taskorder.parser import TaskNode
from taskorder.scheduler import TaskScheduler

BASE_TIME = datetime(2026, 1, 1, tzinfo=timezone.utc)


@pytest.fixture()
def logger():
    return OrderLogger(log_file=None, verbose=True)


@pytest.fixture()
def scheduler(logger):
    return TaskScheduler(logger)


@pytest.fixture()
def make_task():
    """Build tasks whose creation time follows the call order."""
    counter = {'n': 0}

    def _make(task_id, deps=(), order=None, status='pending', project='p1', created_at=None):
        counter['n'] += 1
        return TaskNode(
            id=task_id,
            project_id=project,
            dependencies=tuple(deps),
            status=status,
            execution_order=order,
            created_at=created_at or BASE_TIME + timedelta(minutes=counter['n']),
            name=f"task {task_id}",
        )

    return _make
