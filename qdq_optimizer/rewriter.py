"""
QDQ Rewriter
============

Turns a QDQMatch into graph edits.

Fused rules:
  [Q] -> DQ -> Conv -> Q -> ...     becomes     [Q] -> QLinearConv -> ...
  The DQs, the target and the output Q are removed in one batch. The fused
  node takes the target's name, consumes the DQ operand triples and produces
  the output Q's NodeArg, so downstream consumers are untouched.

Transparent rules:
  ... -> DQ -> MaxPool -> Q -> ...  becomes     ... -> MaxPool -> ...
  The DQ and Q are removed and the kept node is re-pointed.

The delete set is validated before the first mutation; a violation raises
GraphConsistencyError and leaves the graph as it was.
"""

from .errors import GraphConsistencyError
from .matcher import QDQMatch
from .utils.graph_utils import check_external_consumers, log_external_consumer_warning
from .utils.logger import logger as logging, trace_transformation


class QDQRewriter:
    def rewrite(self, graph, match: QDQMatch):
        """Applies `match` to `graph` and returns the fused (or kept transparent) node."""
        self._validate(graph, match)
        if match.rule.transparent:
            return drop_qdq_around(match, graph)
        return fuse_qdq_node(match, graph)

    def _validate(self, graph, match):
        doomed = match.nodes_to_remove
        for node in doomed + [match.target]:
            if not graph.has_node(node):
                raise GraphConsistencyError(f"Matched node '{node.name}' is no longer in the graph")

        if match.output_q is not None:
            preserved = [match.output_q.outputs[0]]
        else:
            preserved = [match.target.outputs[0]]
        # A transparent target stays and is re-pointed away from its DQ
        rewired = [match.target] if match.rule.transparent else []
        external = check_external_consumers(
            graph, doomed, preserved_outputs=preserved, rewired_consumers=rewired
        )
        if external:
            log_external_consumer_warning(external, logging)
            details = "; ".join(f"{arg} -> {', '.join(users)}" for arg, users in external.items())
            raise GraphConsistencyError(
                f"Rewrite of '{match.target.name}' would orphan values still in use: {details}"
            )


@trace_transformation
def fuse_qdq_node(match, graph):
    target = match.target
    rule = match.rule
    name = target.name
    attrs = rule.attr_mapper(target.attrs)

    triples = [qi.operands for qi in match.inputs]
    bias = match.bias.dq.inputs[0] if match.bias is not None else None
    inputs = rule.input_layout(triples, match.output_operands, bias)

    if match.output_q is not None:
        output = match.output_q.outputs[0]
    else:
        output = target.outputs[0]

    graph.remove_nodes(match.nodes_to_remove, preserved_outputs=[output])
    logging.debug(
        f"[QDQRewriter] Removed {', '.join(n.name for n in match.nodes_to_remove)}"
    )
    return graph.add_node(
        rule.fused_op_type,
        inputs,
        [output],
        name=name,
        domain=rule.fused_domain,
        attrs=attrs,
    )


@trace_transformation
def drop_qdq_around(match, graph):
    target = match.target
    quantized = match.inputs[0]
    data = quantized.dq.inputs[0]
    output = match.output_q.outputs[0]

    # Detach the DQ first so it has no consumer left when the batch is removed
    graph.replace_input(target, quantized.position, data)
    graph.remove_nodes(match.nodes_to_remove, preserved_outputs=[output])
    graph.replace_output(target, 0, output)
    target.attrs = match.rule.attr_mapper(target.attrs)
    return target
