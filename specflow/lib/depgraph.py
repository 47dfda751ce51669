"""
Task dependency graph.

Edges run from a prerequisite to the task that depends on it: an edge
(from, to) means `to` cannot start before `from` completes.

Cycle detection is a three-color DFS; every back edge to a gray node yields a
cycle. Ordering uses Kahn's algorithm with ties broken by ascending task id, so
the same task list always produces the same order and the same waves.
"""

import heapq
from collections import deque
from dataclasses import dataclass, field

from .types import Task, task_sort_key

WHITE, GRAY, BLACK = 0, 1, 2


@dataclass
class UnknownDependency:
    task_id: str
    missing_id: str


@dataclass
class DependencyGraph:
    nodes: list[str] = field(default_factory=list)
    successors: dict[str, set[str]] = field(default_factory=dict)
    predecessors: dict[str, set[str]] = field(default_factory=dict)
    unknown: list[UnknownDependency] = field(default_factory=list)
    cycles: list[list[str]] = field(default_factory=list)
    order: list[str] | None = None
    waves: list[list[str]] = field(default_factory=list)

    @property
    def is_acyclic(self) -> bool:
        return not self.cycles

    @property
    def edges(self) -> list[tuple[str, str]]:
        return [
            (src, dst)
            for src in self.nodes
            for dst in sorted(self.successors[src], key=task_sort_key)
        ]

    def ancestors(self, task_id: str) -> set[str]:
        """Transitive predecessors of a task."""
        seen: set[str] = set()
        queue = deque(self.predecessors.get(task_id, ()))
        while queue:
            node = queue.popleft()
            if node in seen:
                continue
            seen.add(node)
            queue.extend(self.predecessors.get(node, ()))
        return seen

    def has_path(self, src: str, dst: str) -> bool:
        return src in self.ancestors(dst)

    def parallel(self, a: str, b: str) -> bool:
        """True if neither task is a transitive predecessor of the other."""
        if a == b:
            return False
        return not self.has_path(a, b) and not self.has_path(b, a)

    def wave_of(self, task_id: str) -> int | None:
        for index, wave in enumerate(self.waves):
            if task_id in wave:
                return index
        return None


def _canonical(cycle: list[str]) -> list[str]:
    """Rotate a cycle to start at its smallest id."""
    start = min(range(len(cycle)), key=lambda i: task_sort_key(cycle[i]))
    return cycle[start:] + cycle[:start]


def find_cycles(nodes: list[str], successors: dict[str, set[str]]) -> list[list[str]]:
    """Three-color DFS. Returns each distinct cycle once, in discovery order."""
    color = {node: WHITE for node in nodes}
    cycles: list[list[str]] = []
    seen: set[tuple[str, ...]] = set()

    def children(node: str):
        return iter(sorted(successors.get(node, ()), key=task_sort_key))

    for start in nodes:
        if color[start] != WHITE:
            continue
        color[start] = GRAY
        path = [start]
        stack = [children(start)]

        while stack:
            child = next(stack[-1], None)
            if child is None:
                stack.pop()
                color[path.pop()] = BLACK
                continue
            if color[child] == WHITE:
                color[child] = GRAY
                path.append(child)
                stack.append(children(child))
            elif color[child] == GRAY:
                cycle = _canonical(path[path.index(child):])
                key = tuple(cycle)
                if key not in seen:
                    seen.add(key)
                    cycles.append(cycle)

    return cycles


def topological_order(nodes: list[str], successors: dict[str, set[str]],
                      predecessors: dict[str, set[str]]) -> tuple[list[str], list[list[str]]]:
    """Kahn's algorithm. Returns (order, waves); order is partial if cyclic."""
    in_degree = {node: len(predecessors[node]) for node in nodes}
    heap = [(task_sort_key(n), n) for n in nodes if in_degree[n] == 0]
    heapq.heapify(heap)
    order = []
    while heap:
        _, node = heapq.heappop(heap)
        order.append(node)
        for child in successors[node]:
            in_degree[child] -= 1
            if in_degree[child] == 0:
                heapq.heappush(heap, (task_sort_key(child), child))

    # Waves: tasks whose predecessors all sit in earlier waves
    in_degree = {node: len(predecessors[node]) for node in nodes}
    waves = []
    current = sorted((n for n in nodes if in_degree[n] == 0), key=task_sort_key)
    while current:
        waves.append(current)
        following = []
        for node in current:
            for child in successors[node]:
                in_degree[child] -= 1
                if in_degree[child] == 0:
                    following.append(child)
        current = sorted(following, key=task_sort_key)

    return order, waves


def build_graph(tasks: list[Task]) -> DependencyGraph:
    """Build the dependency graph for a task list.

    Dependencies naming no known task are reported in `unknown` and left out
    of the edge set.
    """
    nodes = sorted({t.id for t in tasks}, key=task_sort_key)
    known = set(nodes)
    successors: dict[str, set[str]] = {n: set() for n in nodes}
    predecessors: dict[str, set[str]] = {n: set() for n in nodes}
    unknown = []

    for task in tasks:
        for dep in sorted(task.depends_on, key=task_sort_key):
            if dep not in known:
                unknown.append(UnknownDependency(task_id=task.id, missing_id=dep))
                continue
            successors[dep].add(task.id)
            predecessors[task.id].add(dep)

    graph = DependencyGraph(
        nodes=nodes,
        successors=successors,
        predecessors=predecessors,
        unknown=unknown,
    )
    graph.cycles = find_cycles(nodes, successors)
    order, waves = topological_order(nodes, successors, predecessors)
    if graph.is_acyclic:
        graph.order = order
        graph.waves = waves
    return graph


def parallel_conflicts(tasks: list[Task], graph: DependencyGraph) -> list[tuple[str, str]]:
    """Pairs inside one run of consecutive [P] tasks where one depends on the other."""
    groups: list[list[str]] = []
    run: list[str] = []
    for task in tasks:
        if task.parallel_eligible:
            run.append(task.id)
            continue
        if len(run) > 1:
            groups.append(run)
        run = []
    if len(run) > 1:
        groups.append(run)

    conflicts = []
    for group in groups:
        for i, a in enumerate(group):
            for b in group[i + 1:]:
                if not graph.parallel(a, b):
                    conflicts.append((a, b))
    return conflicts
