from collections import deque
from dataclasses import dataclass, field
from typing import Dict, List, Set

from taskorder.parser import TaskNode


@dataclass
class DependencyGraph:
    nodes: List[str] = field(default_factory=list)
    dependencies: Dict[str, Set[str]] = field(default_factory=dict)
    dependents: Dict[str, List[str]] = field(default_factory=dict)
    dangling: Dict[str, Set[str]] = field(default_factory=dict)
    self_edges: Set[str] = field(default_factory=set)

    def __contains__(self, task_id: str) -> bool:
        return task_id in self.dependencies

    def __len__(self) -> int:
        return len(self.nodes)

    def has_dependencies(self, task_id: str) -> bool:
        return bool(self.dependencies.get(task_id))

    def edge_count(self) -> int:
        return sum(len(deps) for deps in self.dependencies.values())

    def components(self) -> List[List[str]]:
        """Weakly connected groups of tasks, each listed in snapshot order."""
        index = {task_id: i for i, task_id in enumerate(self.nodes)}
        visited = set()
        components = []

        for start in self.nodes:
            if start in visited:
                continue
            visited.add(start)
            component = []
            queue = deque([start])

            while queue:
                current = queue.popleft()
                component.append(current)
                neighbors = list(self.dependencies[current]) + self.dependents[current]
                for neighbor in neighbors:
                    if neighbor not in visited:
                        visited.add(neighbor)
                        queue.append(neighbor)

            components.append(sorted(component, key=index.__getitem__))

        return components


class GraphBuilder:
    def __init__(self, logger):
        self.logger = logger

    def build(self, tasks: List[TaskNode]) -> DependencyGraph:
        graph = DependencyGraph()

        for task in tasks:
            if task.id in graph.dependencies:
                # later duplicates are ignored, first record wins
                self.logger.warning(f"duplicate task {task.id} in snapshot")
                continue
            graph.nodes.append(task.id)
            graph.dependencies[task.id] = set()
            graph.dependents[task.id] = []

        seen = set()
        for task in tasks:
            if task.id in seen:
                continue
            seen.add(task.id)

            for dep in task.dependencies:
                if dep == task.id:
                    graph.self_edges.add(task.id)
                    self.logger.warning(f"{task.id}: dropped self dependency")
                elif dep not in graph.dependencies:
                    graph.dangling.setdefault(task.id, set()).add(dep)
                    self.logger.warning(f"{task.id}: ignoring unknown dependency {dep}")
                else:
                    graph.dependencies[task.id].add(dep)
                    graph.dependents[dep].append(task.id)

        for task_id in graph.nodes:
            graph.dependents[task_id].sort()

        self.logger.debug(f"graph: {len(graph)} tasks, {graph.edge_count()} edges")
        return graph
