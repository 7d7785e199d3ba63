import heapq
import sys
from collections import deque
from dataclasses import dataclass, field
from typing import Dict, List, Mapping, Optional, Set, Tuple

from taskorder.graph import DependencyGraph, GraphBuilder
from taskorder.parser import TaskNode

# tasks that were never ordered sort after everything else
UNORDERED = sys.maxsize


@dataclass
class OrderResult:
    order: List[str] = field(default_factory=list)
    broken_edges: List[Tuple[str, str]] = field(default_factory=list)
    dangling: Dict[str, Set[str]] = field(default_factory=dict)

    @property
    def positions(self) -> Dict[str, int]:
        return {task_id: index for index, task_id in enumerate(self.order)}

    @property
    def has_cycle(self) -> bool:
        return bool(self.broken_edges)


class TaskScheduler:
    def __init__(self, logger):
        self.logger = logger
        self.builder = GraphBuilder(logger)

    def build_dependency_graph(self, tasks: List[TaskNode]) -> DependencyGraph:
        return self.builder.build(tasks)

    @staticmethod
    def tie_break_key(task: TaskNode, seed: Optional[int] = None) -> tuple:
        if seed is None:
            seed = task.execution_order
        if seed is None:
            seed = UNORDERED
        return (seed, task.created_at, task.id)

    def detect_cycles(self, graph: DependencyGraph) -> bool:
        in_degree = {task_id: len(graph.dependencies[task_id]) for task_id in graph.nodes}
        queue = deque([task_id for task_id in graph.nodes if in_degree[task_id] == 0])
        processed = 0

        while queue:
            current = queue.popleft()
            processed += 1

            for neighbor in graph.dependents[current]:
                in_degree[neighbor] -= 1
                if in_degree[neighbor] == 0:
                    queue.append(neighbor)

        has_cycle = processed != len(graph)

        if has_cycle:
            self.logger.error("cycle detected in task dependencies")

        return has_cycle

    def cycle_entry_points(self, graph: DependencyGraph, remaining: Set[str]) -> Set[str]:
        """Tasks on a cycle that no other unplaced task feeds into.

        Strongly connected components of the unplaced subgraph are found with
        an iterative Kosaraju pass. Forcing a member of a source component
        only breaks edges inside that component.
        """
        def deps_of(task_id):
            return sorted(graph.dependencies[task_id] & remaining)

        finished = []
        visited = set()
        for start in sorted(remaining):
            if start in visited:
                continue
            visited.add(start)
            stack = [(start, iter(deps_of(start)))]
            while stack:
                node, pending = stack[-1]
                nxt = next((dep for dep in pending if dep not in visited), None)
                if nxt is None:
                    stack.pop()
                    finished.append(node)
                else:
                    visited.add(nxt)
                    stack.append((nxt, iter(deps_of(nxt))))

        component = {}
        members = {}
        for start in reversed(finished):
            if start in component:
                continue
            component[start] = start
            members[start] = [start]
            stack = [start]
            while stack:
                node = stack.pop()
                for dependent in graph.dependents[node]:
                    if dependent in remaining and dependent not in component:
                        component[dependent] = start
                        members[start].append(dependent)
                        stack.append(dependent)

        entry_points = set()
        for root, nodes in members.items():
            if len(nodes) < 2:
                continue
            fed_from_outside = any(
                component[dep] != root
                for node in nodes
                for dep in graph.dependencies[node] & remaining
            )
            if not fed_from_outside:
                entry_points.update(nodes)

        return entry_points or set(remaining)

    def resolve(
        self,
        tasks: List[TaskNode],
        graph: Optional[DependencyGraph] = None,
        seeds: Optional[Mapping[str, int]] = None,
    ) -> OrderResult:
        """Kahn sort, picking the ready task with the lowest tie-break key.

        When no task is ready but some remain, the lowest-key task of a cycle
        that nothing else still waits on is placed anyway. Its unmet incoming
        edges, all inside that cycle, are reported as broken.
        """
        if graph is None:
            graph = self.build_dependency_graph(tasks)
        seeds = seeds or {}

        task_map = {}
        for task in tasks:
            task_map.setdefault(task.id, task)
        keys = {
            task_id: self.tie_break_key(task_map[task_id], seeds.get(task_id))
            for task_id in graph.nodes
        }

        in_degree = {task_id: len(graph.dependencies[task_id]) for task_id in graph.nodes}
        ready = [(keys[task_id], task_id) for task_id in graph.nodes if in_degree[task_id] == 0]
        heapq.heapify(ready)

        result = OrderResult(dangling={k: set(v) for k, v in graph.dangling.items()})
        remaining = set(graph.nodes)

        while remaining:
            if ready:
                _, current = heapq.heappop(ready)
            else:
                candidates = self.cycle_entry_points(graph, remaining)
                current = min(candidates, key=keys.__getitem__)
                for dep in sorted(graph.dependencies[current]):
                    if dep in remaining:
                        result.broken_edges.append((dep, current))
                self.logger.warning(f"cycle: forcing {current} ahead of its dependencies")

            remaining.discard(current)
            result.order.append(current)

            for neighbor in graph.dependents[current]:
                if neighbor not in remaining:
                    continue
                in_degree[neighbor] -= 1
                if in_degree[neighbor] == 0:
                    heapq.heappush(ready, (keys[neighbor], neighbor))

        if result.broken_edges:
            edges = ', '.join(f"{dep}->{task_id}" for dep, task_id in result.broken_edges)
            self.logger.warning(f"broke {len(result.broken_edges)} dependency edges: {edges}")

        return result

    def apply(self, tasks: List[TaskNode], result: OrderResult) -> List[TaskNode]:
        positions = result.positions
        ordered = []
        seen = set()
        for task in tasks:
            if task.id in seen or task.id not in positions:
                continue
            seen.add(task.id)
            ordered.append(task.copy(execution_order=positions[task.id]))
        ordered.sort(key=lambda t: t.execution_order)
        return ordered

    def recalculate(
        self,
        tasks: List[TaskNode],
        seeds: Optional[Mapping[str, int]] = None,
    ) -> List[TaskNode]:
        graph = self.build_dependency_graph(tasks)
        result = self.resolve(tasks, graph, seeds)
        ordered = self.apply(tasks, result)

        self.logger.debug(f"execution order: {', '.join(result.order)}")
        return ordered
