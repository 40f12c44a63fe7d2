"""
Dependency Graph

networkx view of a workflow's effective dependencies (edge: dependency -> step).
"""

import logging
from typing import Iterable, List, Set

import networkx as nx

from schemas.workflow import Step, Workflow

logger = logging.getLogger(__name__)


def materialize_steps(workflow: Workflow) -> List[Step]:
    """
    Copies of the workflow's steps with every implicit sequential
    dependency written out, so rewrites cannot change the ordering.
    """
    deps = workflow.dependencies()
    return [step.model_copy(update={"depends_on": list(deps[step.id])}, deep=True) for step in workflow.steps]


def build_dependency_graph(steps: Iterable[Step]) -> nx.DiGraph:
    """
    Build a dependency graph from steps with explicit depends_on lists.

    Dependencies on unknown step ids are ignored.
    """
    steps = list(steps)
    graph = nx.DiGraph()

    for step in steps:
        graph.add_node(step.id, step=step)

    known = {step.id for step in steps}
    for step in steps:
        for dependency in step.depends_on or []:
            if dependency in known:
                graph.add_edge(dependency, step.id)
            else:
                logger.debug(f"Ignoring dependency of {step.id} on unknown step {dependency}")

    return graph


def bypass_nodes(graph: nx.DiGraph, nodes: Iterable[str]) -> nx.DiGraph:
    """
    Copy of the graph without the given nodes, each one's predecessors linked
    straight to its successors. Reachability between the remaining nodes is kept.
    """
    bypassed = graph.copy()
    for node in nodes:
        if node not in bypassed:
            continue
        predecessors = list(bypassed.predecessors(node))
        successors = list(bypassed.successors(node))
        bypassed.remove_node(node)
        bypassed.add_edges_from((p, s) for p in predecessors for s in successors if p != s)
    return bypassed


def are_independent(graph: nx.DiGraph, a: str, b: str) -> bool:
    """No transitive dependency in either direction."""
    return not nx.has_path(graph, a, b) and not nx.has_path(graph, b, a)


def independent_groups(graph: nx.DiGraph) -> List[Set[str]]:
    """
    Groups of two or more mutually independent steps.

    Each topological generation is an antichain; members are still checked
    pairwise for reachability before being returned.
    """
    try:
        generations = list(nx.topological_generations(graph))
    except nx.NetworkXUnfeasible:
        logger.warning("Dependency graph has a cycle; no independent groups")
        return []

    groups = []
    for generation in generations:
        members = set(generation)
        if len(members) < 2:
            continue
        ordered = sorted(members)
        if all(are_independent(graph, a, b) for i, a in enumerate(ordered) for b in ordered[i + 1:]):
            groups.append(members)
    return groups


def is_acyclic(steps: Iterable[Step]) -> bool:
    return nx.is_directed_acyclic_graph(build_dependency_graph(steps))
