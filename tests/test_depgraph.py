"""Tests for specflow.lib.depgraph module."""

from specflow.lib.depgraph import build_graph, find_cycles, parallel_conflicts
from specflow.lib.types import Task


def _task(task_id, depends=(), parallel=False):
    return Task(id=task_id, title=f"Task {task_id}", depends_on=set(depends), parallel_eligible=parallel)


class TestCycles:
    """Tests for cycle detection."""

    def test_two_task_cycle(self):
        graph = build_graph([_task("3", ["5"]), _task("5", ["3"])])
        assert graph.cycles == [["3", "5"]]
        assert not graph.is_acyclic
        assert graph.order is None
        assert graph.waves == []

    def test_cycle_canonical_start(self):
        graph = build_graph([_task("1"), _task("7", ["4"]), _task("4", ["9"]), _task("9", ["7"])])
        assert graph.cycles == [["4", "7", "9"]]

    def test_self_dependency(self):
        graph = build_graph([_task("2", ["2"])])
        assert graph.cycles == [["2"]]

    def test_find_cycles_direct(self):
        successors = {"1": {"2"}, "2": {"1"}, "3": set()}
        assert find_cycles(["1", "2", "3"], successors) == [["1", "2"]]

    def test_acyclic(self):
        graph = build_graph([_task("1"), _task("2", ["1"]), _task("3", ["1"]), _task("4", ["2", "3"])])
        assert graph.is_acyclic
        assert graph.cycles == []


class TestOrdering:
    """Tests for topological order and waves."""

    def test_order_and_waves(self):
        graph = build_graph([_task("4", ["2", "3"]), _task("3", ["1"]), _task("2", ["1"]), _task("1")])
        assert graph.order == ["1", "2", "3", "4"]
        assert graph.waves == [["1"], ["2", "3"], ["4"]]
        assert graph.wave_of("3") == 1
        assert graph.wave_of("42") is None

    def test_ties_by_numeric_id(self):
        graph = build_graph([_task("10"), _task("2"), _task("1.5")])
        assert graph.order == ["1.5", "2", "10"]
        assert graph.waves == [["1.5", "2", "10"]]

    def test_edges(self):
        graph = build_graph([_task("1"), _task("2", ["1"])])
        assert graph.edges == [("1", "2")]

    def test_no_path_back_after_pass(self):
        graph = build_graph([_task("1"), _task("2", ["1"]), _task("3", ["2"])])
        for a in graph.nodes:
            for b in graph.nodes:
                if graph.has_path(a, b):
                    assert not graph.has_path(b, a)


class TestUnknownDependencies:
    """Tests for dependencies on missing tasks."""

    def test_reported_and_not_edges(self):
        graph = build_graph([_task("1", ["8"])])
        assert [(u.task_id, u.missing_id) for u in graph.unknown] == [("1", "8")]
        assert graph.edges == []
        assert graph.is_acyclic


class TestParallel:
    """Tests for parallel eligibility."""

    def test_parallel_relation(self):
        graph = build_graph([_task("1"), _task("2", ["1"]), _task("3", ["1"]), _task("4", ["2"])])
        assert graph.parallel("2", "3")
        assert not graph.parallel("1", "4")
        assert not graph.parallel("2", "2")
        assert graph.ancestors("4") == {"1", "2"}

    def test_conflict_within_group(self):
        tasks = [_task("1"), _task("2", ["1"], True), _task("3", ["2"], True), _task("4", ["1"], True)]
        graph = build_graph(tasks)
        assert parallel_conflicts(tasks, graph) == [("2", "3")]

    def test_groups_split_by_sequential_task(self):
        tasks = [_task("1", parallel=True), _task("2", ["1"]), _task("3", ["1"], True)]
        graph = build_graph(tasks)
        assert parallel_conflicts(tasks, graph) == []
