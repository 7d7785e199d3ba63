import asyncio
import sys
from dataclasses import replace

import click

from taskorder.config import Settings
from taskorder.logger import OrderLogger
from taskorder.service import TaskOrderService
from taskorder.store import YamlTaskStore


def _run(ctx, coro_factory):
    """Run one service call, turning faults into exit status 1."""
    logger = ctx.obj['logger']
    try:
        return asyncio.run(coro_factory(ctx.obj['service']))
    except Exception as e:
        logger.error(f"failed: {e}")
        sys.exit(1)


def _print_tasks(logger, tasks):
    if not tasks:
        logger.info("no tasks found")
        return
    for task in tasks:
        deps = ', '.join(task.dependencies) or '-'
        logger.info(f"[{task.execution_order}] {task.id} {task.name} ({task.status.value}, deps: {deps})")


@click.group()
@click.version_option()
@click.option('--store', '-s', type=click.Path(dir_okay=False), default=None, help='task store file')
@click.option('--log-file', default=None, help='log file, empty to disable')
@click.option('--verbose', '-v', is_flag=True, help='debug output')
@click.pass_context
def cli(ctx, store, log_file, verbose):
    """taskorder - dependency-aware task ordering"""
    settings = Settings.from_env()
    if store is not None:
        settings = replace(settings, store_path=store)
    if log_file is not None:
        settings = replace(settings, log_file=log_file or None)
    if verbose:
        settings = replace(settings, verbose=True)

    logger = OrderLogger(settings.log_file, settings.verbose)
    service = TaskOrderService(YamlTaskStore(settings.store_path, logger), logger, settings)
    ctx.obj = {'settings': settings, 'logger': logger, 'service': service}


@cli.command()
@click.argument('project')
@click.pass_context
def order(ctx, project):
    """recompute execution order"""
    tasks = _run(ctx, lambda service: service.recalculate_order(project))
    _print_tasks(ctx.obj['logger'], tasks)


@cli.command()
@click.argument('project')
@click.argument('task_ids', nargs=-1, required=True)
@click.pass_context
def reorder(ctx, project, task_ids):
    """apply a manual order, keeping dependencies legal"""
    tasks = _run(ctx, lambda service: service.reorder_tasks(project, task_ids))
    _print_tasks(ctx.obj['logger'], tasks)


@cli.command()
@click.argument('task_id')
@click.pass_context
def check(ctx, task_id):
    """check whether a task can start"""
    logger = ctx.obj['logger']
    result = _run(ctx, lambda service: service.can_execute(task_id))

    if result.executable:
        logger.info(f"{task_id}: executable")
        return
    if not result.found:
        logger.error(f"{task_id}: not found")
    elif result.blocked_by:
        logger.error(f"{task_id}: blocked by {', '.join(result.blocked_by)}")
    else:
        logger.error(f"{task_id}: already completed")
    sys.exit(1)


@cli.command()
@click.argument('project')
@click.pass_context
def status(ctx, project):
    """show tasks of a project"""
    async def load(service):
        tasks = await service.store.load_project_tasks(project)
        return sorted(tasks, key=service.scheduler.tie_break_key)

    _print_tasks(ctx.obj['logger'], _run(ctx, load))


@cli.command()
@click.argument('project')
@click.pass_context
def chains(ctx, project):
    """show dependency chains and graph problems"""
    logger = ctx.obj['logger']

    async def build(service):
        tasks = await service.store.load_project_tasks(project)
        graph = service.scheduler.build_dependency_graph(tasks)
        if not service.scheduler.detect_cycles(graph):
            return graph, []
        return graph, service.scheduler.resolve(tasks, graph).broken_edges

    graph, broken_edges = _run(ctx, build)
    for i, component in enumerate(graph.components()):
        logger.info(f"chain {i + 1}: {', '.join(component)}")
    for task_id, deps in sorted(graph.dangling.items()):
        logger.warning(f"{task_id}: unknown dependencies {', '.join(sorted(deps))}")
    for task_id in sorted(graph.self_edges):
        logger.warning(f"{task_id}: depends on itself")
    for dep, task_id in broken_edges:
        logger.warning(f"cycle: {task_id} placed before its dependency {dep}")


@cli.command()
@click.argument('project')
@click.argument('name')
@click.option('--dep', '-d', 'deps', multiple=True, help='dependency task id')
@click.option('--id', 'task_id', default=None, help='explicit task id')
@click.pass_context
def add(ctx, project, name, deps, task_id):
    """create a task"""
    task = _run(ctx, lambda service: service.create_task(project, name, deps, task_id))
    ctx.obj['logger'].info(f"{task.id}: created at position {task.execution_order}")


@cli.command()
@click.argument('task_id')
@click.argument('dependencies', nargs=-1)
@click.pass_context
def deps(ctx, task_id, dependencies):
    """replace the dependencies of a task"""
    task = _run(ctx, lambda service: service.update_dependencies(task_id, dependencies))
    ctx.obj['logger'].info(f"{task.id}: now at position {task.execution_order}")


@cli.command()
@click.argument('task_id')
@click.pass_context
def start(ctx, task_id):
    """mark a task in progress"""
    _run(ctx, lambda service: service.set_status(task_id, 'in_progress'))


@cli.command()
@click.argument('task_id')
@click.pass_context
def complete(ctx, task_id):
    """mark a task completed"""
    _run(ctx, lambda service: service.set_status(task_id, 'completed'))


@cli.command()
@click.argument('task_id')
@click.option('--force', is_flag=True, help='delete even if other tasks depend on it')
@click.pass_context
def delete(ctx, task_id, force):
    """delete a task"""
    _run(ctx, lambda service: service.delete_task(task_id, force))


if __name__ == '__main__':
    cli()
