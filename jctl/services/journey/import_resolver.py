"""
Import Resolver - install order for a batch of journeys

A journey that calls another journey through an inner tree evaluator node must be
installed after it. Resolution is an iterative fixed point over a work list.
"""

from typing import Any, Dict, Iterable, List, Mapping
from loguru import logger

from ...core.journey.journey_models import ResolutionResult, SingleTreeExport
from ...core.journey.node_types import INNER_TREE_EVALUATOR_NODE_TYPE, node_type_of


def journey_dependencies(bundle: SingleTreeExport) -> List[str]:
    """Names of journeys referenced by the bundle's inner tree evaluator nodes"""
    dependencies: List[str] = []
    for node in bundle.nodes.values():
        if node_type_of(node) == INNER_TREE_EVALUATOR_NODE_TYPE:
            target = node.get('tree')
            if target and target not in dependencies:
                dependencies.append(target)
    return dependencies


def resolve_dependencies(journeys: Mapping[str, SingleTreeExport],
                         installed: Iterable[str]) -> ResolutionResult:
    """
    Order journeys so every journey comes after the journeys it calls

    A dependency is satisfied when it was resolved earlier in this run, is already
    installed on the target, or is the journey itself. Passes repeat until all
    journeys are resolved or a pass resolves nothing new; what is left is reported
    with its outstanding dependency names and must not be installed.
    """
    installed_set = set(installed)
    dependencies: Dict[str, List[str]] = {
        name: journey_dependencies(bundle) for name, bundle in journeys.items()
    }

    order: List[str] = []
    resolved = set()
    work_list = list(journeys)

    while work_list:
        remaining = []
        for name in work_list:
            if all(dep == name or dep in resolved or dep in installed_set for dep in dependencies[name]):
                order.append(name)
                resolved.add(name)
            else:
                remaining.append(name)

        if len(remaining) == len(work_list):
            break
        work_list = remaining

    unresolved = {
        name: [dep for dep in dependencies[name]
               if dep != name and dep not in resolved and dep not in installed_set]
        for name in work_list if name not in resolved
    }

    if unresolved:
        for name, missing in unresolved.items():
            logger.error(f"{name} requires {', '.join(missing)}")
    else:
        logger.debug(f"Resolved all dependencies: {', '.join(order)}")

    return ResolutionResult(order=order, unresolved=unresolved)


def installed_journey_names(trees: Iterable[Dict[str, Any]]) -> List[str]:
    """Journey names from a tree listing"""
    return [tree['_id'] for tree in trees]
