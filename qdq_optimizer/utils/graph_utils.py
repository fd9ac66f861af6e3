"""
Graph manipulation utility functions.

Stateless helpers for common graph queries, kept apart from Graph so the
optimizer and the tests can share them.
"""

import collections
from typing import Dict, Iterable, List


def count_ops(graph) -> Dict[str, int]:
    """
    Count nodes per operator type.

    Standard-domain ops are keyed by op_type, other domains by
    'domain.op_type' (e.g. 'com.microsoft.QLinearAdd').

    Args:
        graph: The graph to inspect

    Returns:
        Dict mapping op keys to node counts (missing keys count as 0)
    """
    counts: Dict[str, int] = collections.defaultdict(int)
    for node in graph.nodes:
        counts[node.qualified_op_type] += 1
    return counts


def check_external_consumers(
    graph,
    nodes: Iterable,
    preserved_outputs: Iterable = (),
    rewired_consumers: Iterable = (),
) -> Dict[str, List[str]]:
    """
    Check if nodes about to be removed still feed anything outside the removal set.

    Args:
        graph: The graph
        nodes: Nodes scheduled for removal
        preserved_outputs: NodeArgs that will get a new producer (skipped)
        rewired_consumers: Nodes that will stop consuming removed outputs

    Returns:
        Dict mapping NodeArg names to the external consumer names
        ('<graph output>' marks a graph output)
    """
    doomed = {node.id for node in nodes}
    allowed = doomed | {node.id for node in rewired_consumers}
    preserved = {id(arg) for arg in preserved_outputs}

    external: Dict[str, List[str]] = {}
    for node in nodes:
        for arg in node.outputs:
            if id(arg) in preserved:
                continue
            users = [c.name for c in graph.consumers(arg) if c.id not in allowed]
            if graph.is_graph_output(arg):
                users.append("<graph output>")
            if users:
                external[arg.name] = users
    return external


def log_external_consumer_warning(external: Dict[str, List[str]], logger):
    """Log warning about values that still have external consumers."""
    logger.warning("Nodes marked for removal still have external consumers:")
    for arg_name, users in list(external.items())[:3]:
        consumer_list = ", ".join(users[:5])
        if len(users) > 5:
            consumer_list += f" and {len(users) - 5} more..."
        logger.warning(f"  - {arg_name}: consumed by {consumer_list}")
    if len(external) > 3:
        logger.warning(f"  ... and {len(external) - 3} more values")
