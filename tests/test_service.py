import asyncio

import pytest

from taskorder.config import Settings
from taskorder.errors import (
    InvalidReorderError,
    StorageError,
    TaskBlockedError,
    TaskDeleteError,
    TaskNotFoundError,
)
from taskorder.parser import TaskStatus
from taskorder.service import TaskOrderService
from taskorder.store import MemoryTaskStore


class SlowStore(MemoryTaskStore):
    """Memory store whose project loads take a while and report overlap."""

    def __init__(self, tasks=()):
        super().__init__(tasks)
        self.active = 0
        self.peak = 0

    async def load_project_tasks(self, project_id):
        self.active += 1
        self.peak = max(self.peak, self.active)
        try:
            await asyncio.sleep(0.01)
            return await super().load_project_tasks(project_id)
        finally:
            self.active -= 1


def _orders(tasks):
    return {task.id: task.execution_order for task in tasks}


async def _stored_orders(store, project='p1'):
    return _orders(await store.load_project_tasks(project))


@pytest.fixture()
def store():
    return MemoryTaskStore()


@pytest.fixture()
def service(store, logger):
    return TaskOrderService(store, logger)


@pytest.mark.asyncio
async def test_create_tasks_keeps_dependency_order(service, store):
    await service.create_task('p1', 'write tests', task_id='tests')
    await service.create_task('p1', 'ship', dependencies=['tests', 'docs'], task_id='ship')
    created = await service.create_task('p1', 'docs', task_id='docs')

    assert created.execution_order == 1
    assert await _stored_orders(store) == {'tests': 0, 'docs': 1, 'ship': 2}


@pytest.mark.asyncio
async def test_create_rejects_existing_id(service):
    await service.create_task('p1', 'a', task_id='a')

    with pytest.raises(ValueError, match='duplicate task'):
        await service.create_task('p2', 'a again', task_id='a')


@pytest.mark.asyncio
async def test_dependency_edit_pushes_dependent_later(service, store, make_task):
    for i, task_id in enumerate('ABCD'):
        await store.save_tasks([make_task(task_id, order=i)])

    updated = await service.update_dependencies('A', ['C'])

    assert updated.dependencies == ('C',)
    assert await _stored_orders(store) == {'B': 0, 'C': 1, 'A': 2, 'D': 3}


@pytest.mark.asyncio
async def test_recalculate_normalizes_gaps(service, store, make_task):
    await store.save_tasks([make_task('A', order=10), make_task('B', order=40), make_task('C')])

    ordered = await service.recalculate_order('p1')

    assert [t.id for t in ordered] == ['A', 'B', 'C']
    assert await _stored_orders(store) == {'A': 0, 'B': 1, 'C': 2}
    assert await service.recalculate_order('empty') == []


@pytest.mark.asyncio
async def test_recalculate_all_projects(service, store, make_task):
    await store.save_tasks([
        make_task('A', order=3),
        make_task('B', order=7),
        make_task('X', order=5, project='p2'),
    ])

    counts = await service.recalculate_all()

    assert counts == {'p1': 2, 'p2': 1}
    assert await _stored_orders(store, 'p2') == {'X': 0}


@pytest.mark.asyncio
async def test_reorder_is_persisted(service, store, make_task):
    await store.save_tasks([make_task(t, order=i) for i, t in enumerate('ABC')])

    result = await service.reorder_tasks('p1', ['C', 'A', 'B'])

    assert [t.id for t in result] == ['C', 'A', 'B']
    assert await _stored_orders(store) == {'C': 0, 'A': 1, 'B': 2}


@pytest.mark.asyncio
async def test_bad_reorders_leave_store_untouched(service, store, make_task):
    await store.save_tasks([make_task(t, order=i) for i, t in enumerate('ABC')])
    saves = store.save_count

    with pytest.raises(InvalidReorderError):
        await service.reorder_tasks('p1', ['A', 'A'])
    await service.reorder_tasks('p1', ['A', 'ghost'])

    assert store.save_count == saves
    assert await _stored_orders(store) == {'A': 0, 'B': 1, 'C': 2}


@pytest.mark.asyncio
async def test_start_requires_completed_dependencies(service, make_task, store):
    await store.save_tasks([make_task('A', order=0), make_task('B', deps=['A'], order=1)])

    with pytest.raises(TaskBlockedError) as excinfo:
        await service.set_status('B', 'in_progress')
    assert excinfo.value.gate_result.blocked_by == ['A']
    assert (await store.get_task('B')).status is TaskStatus.PENDING

    await service.set_status('A', 'completed')
    started = await service.set_status('B', 'in-progress')

    assert started.status is TaskStatus.IN_PROGRESS
    assert 'completed_at' in (await store.get_task('A')).extra


@pytest.mark.asyncio
async def test_can_execute_reads_every_project(service, store, make_task):
    await store.save_tasks([
        make_task('X', status='completed', project='p2'),
        make_task('T', deps=['X', 'gone']),
    ])

    result = await service.can_execute('T')

    assert result.blocked_by == ['gone']


@pytest.mark.asyncio
async def test_missing_dependencies_setting(store, logger, make_task):
    service = TaskOrderService(store, logger, Settings(missing_dependencies_block=False))
    await store.save_tasks([make_task('T', deps=['gone'])])

    assert (await service.can_execute('T')).executable


@pytest.mark.asyncio
async def test_delete_guards(service, store, make_task):
    await store.save_tasks([
        make_task('A', order=0),
        make_task('B', deps=['A'], order=1),
        make_task('done', status='completed', order=2),
    ])

    with pytest.raises(TaskDeleteError, match='dependent tasks: B'):
        await service.delete_task('A')
    with pytest.raises(TaskDeleteError, match='completed'):
        await service.delete_task('done')
    with pytest.raises(TaskNotFoundError):
        await service.delete_task('ghost')


@pytest.mark.asyncio
async def test_forced_delete_keeps_dangling_reference(service, store, make_task):
    await store.save_tasks([
        make_task('A', order=0),
        make_task('B', deps=['A'], order=1),
        make_task('C', order=2),
    ])

    remaining = await service.delete_task('A', force=True)

    assert _orders(remaining) == {'B': 0, 'C': 1}
    assert (await store.get_task('B')).dependencies == ('A',)
    assert await store.get_task('A') is None


@pytest.mark.asyncio
async def test_storage_fault_persists_nothing(service, store, make_task):
    await store.save_tasks([make_task('A', order=5), make_task('B', order=1)])
    notified = []
    service.subscribe(notified.append)
    store.fail_on_save = True

    with pytest.raises(StorageError):
        await service.recalculate_order('p1')

    assert await _stored_orders(store) == {'A': 5, 'B': 1}
    assert notified == []

    store.fail_on_save = False
    store.fail_on_load = True
    with pytest.raises(StorageError):
        await service.recalculate_order('p1')


@pytest.mark.asyncio
async def test_listeners_hear_about_saved_changes(service):
    plain = []
    awaited = []

    async def async_listener(project_id):
        awaited.append(project_id)

    service.subscribe(plain.append)
    service.subscribe(async_listener)

    await service.create_task('p1', 'a', task_id='a')
    await service.create_task('p2', 'b', task_id='b')

    assert plain == ['p1', 'p2']
    assert awaited == ['p1', 'p2']


@pytest.mark.asyncio
async def test_concurrent_creates_in_one_project_do_not_clobber(logger):
    store = SlowStore()
    service = TaskOrderService(store, logger)

    await asyncio.gather(*(service.create_task('p1', name, task_id=name) for name in 'abcd'))

    orders = await _stored_orders(store)
    assert sorted(orders) == ['a', 'b', 'c', 'd']
    assert sorted(orders.values()) == [0, 1, 2, 3]
    assert store.peak == 1


@pytest.mark.asyncio
async def test_update_and_reorder_race_keeps_both_intents(logger, make_task):
    store = SlowStore([make_task(t, order=i) for i, t in enumerate('ABC')])
    service = TaskOrderService(store, logger)

    await asyncio.gather(
        service.update_dependencies('A', ['B']),
        service.reorder_tasks('p1', ['C', 'B', 'A']),
    )

    stored = {t.id: t for t in await store.load_project_tasks('p1')}
    assert stored['A'].dependencies == ('B',)
    assert stored['B'].execution_order < stored['A'].execution_order
    assert sorted(t.execution_order for t in stored.values()) == [0, 1, 2]


@pytest.mark.asyncio
async def test_projects_do_not_wait_on_each_other(logger, make_task):
    store = SlowStore([make_task('A'), make_task('X', project='p2')])
    service = TaskOrderService(store, logger)

    await asyncio.gather(service.recalculate_order('p1'), service.recalculate_order('p2'))

    assert store.peak == 2
