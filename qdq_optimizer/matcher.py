"""
QDQ Pattern Matcher
===================

Decides, for one candidate target node, whether every quantized input is fed
by a legal DequantizeLinear and whether its output feeds a QuantizeLinear, and
collects the quantization parameters the Rewriter needs.

Accepted input shapes (per quantized position):

    Q(x) -> DQ -> target        QDQ pair; Q and DQ parameters must be equal
    W_int8 -> DQ -> target      pre-quantized initializer (weights)
    F_int8 -> DQ -> target      integer value from an already fused producer

Every DQ must have the target as its only consumer, and the Q of a QDQ pair
must have the DQ as its only consumer, so removing them affects nothing else.
Upstream Q nodes are never deleted: they keep supplying the integer operand.

All failures are MatchFailure subclasses; the caller leaves the node alone.
"""

from typing import List, Optional

import numpy as np

from .core import Any, Const, Op
from .errors import PatternMismatchError
from .quantization import (
    DEFAULT_QDQ_AXIS,
    DEQUANTIZE_OP,
    QUANTIZE_OP,
    QuantParams,
    get_bias_params,
    get_quant_params,
    is_quantize,
)
from .rules import FUSION_RULES, FusionRule, get_fusion_rule

# DQ whose single outgoing edge is the target
DQ_PATTERN = Op(DEQUANTIZE_OP, alias="dq", consumer_count=1)

# Q of a QDQ pair, consumed only by its DQ
QDQ_SOURCE_PATTERN = Op(QUANTIZE_OP, Any(alias="float_input"), Any(), Any(), alias="q", consumer_count=1)

# Conv bias: DQ over an int32 initializer
BIAS_DQ_PATTERN = Op(DEQUANTIZE_OP, Const(alias="bias"), Any(), Any(), alias="dq", consumer_count=1)

BIAS_SCALE_RTOL = 1e-4


class QuantizedInput:
    """One matched input edge of the target."""

    def __init__(self, position: int, dq, params: QuantParams, source=None):
        self.position = position
        self.dq = dq
        self.params = params
        self.source = source  # QuantizeLinear of a QDQ pair, or None

    @property
    def operands(self):
        """(integer tensor, scale, zero point) as consumed by the fused node."""
        return tuple(self.dq.inputs[:3])

    def __repr__(self) -> str:
        return f"QuantizedInput(position={self.position}, dq='{self.dq.name}', params={self.params})"


class QDQMatch:
    """Result of a successful match; everything the Rewriter needs."""

    def __init__(
        self,
        target,
        rule: FusionRule,
        inputs: List[QuantizedInput],
        output_q=None,
        output_params: Optional[QuantParams] = None,
        bias: Optional[QuantizedInput] = None,
    ):
        self.target = target
        self.rule = rule
        self.inputs = inputs
        self.output_q = output_q
        self.output_params = output_params
        self.bias = bias

    @property
    def nodes_to_remove(self):
        nodes = [qi.dq for qi in self.inputs]
        if self.bias is not None:
            nodes.append(self.bias.dq)
        if self.output_q is not None:
            nodes.append(self.output_q)
        if not self.rule.transparent:
            nodes.append(self.target)
        return nodes

    @property
    def output_operands(self):
        """(scale, zero point) of the consumed output Q, empty when none."""
        if self.output_q is None:
            return ()
        return tuple(self.output_q.inputs[1:3])

    def __repr__(self) -> str:
        return (
            f"QDQMatch(target='{self.target.name}', rule={self.rule.op_type}, "
            f"inputs={len(self.inputs)}, output_q={getattr(self.output_q, 'name', None)})"
        )


class QDQMatcher:
    def __init__(self, rules=FUSION_RULES, allow_per_channel=True, protected_nodes=None):
        self.rules = rules
        self.allow_per_channel = allow_per_channel
        self.protected_nodes = set(protected_nodes or [])

    def match(self, graph, node) -> QDQMatch:
        """
        Matches the QDQ structure around `node`.

        Raises:
            NoRuleError: no rule for the node's op type.
            PatternMismatchError, NotConstantError, UnsupportedTypeError:
                the structure around the node is not fusable.
        """
        rule = get_fusion_rule(node.op_type, node.domain, self.rules)

        if len(node.outputs) != 1:
            raise PatternMismatchError(
                f"'{node.name}' has {len(node.outputs)} outputs, expected 1", node
            )

        positions = rule.quantized_positions(len(node.inputs))
        if not positions or max(positions) >= len(node.inputs):
            raise PatternMismatchError(
                f"'{node.name}' has too few inputs for {rule.op_type} fusion", node
            )

        bias_position = None
        if rule.optional_bias is not None and len(node.inputs) > rule.optional_bias:
            bias_position = rule.optional_bias

        if not rule.transparent:
            allowed = set(positions)
            if bias_position is not None:
                allowed.add(bias_position)
            extra = [i for i in range(len(node.inputs)) if i not in allowed]
            if extra:
                raise PatternMismatchError(
                    f"'{node.name}' has unquantized inputs at positions {extra}", node
                )

        inputs = [self._match_input(graph, node, rule, pos) for pos in positions]

        bias = None
        if bias_position is not None:
            bias = self._match_bias(graph, node, bias_position, inputs)

        output_q, output_params = self._match_output(graph, node, rule)

        if rule.transparent and not output_params.equals(inputs[0].params):
            raise PatternMismatchError(
                f"'{node.name}' is quantization-transparent but input {inputs[0].params} "
                f"and output {output_params} parameters differ",
                node,
            )

        if rule.same_type:
            types = {qi.params.dtype for qi in inputs}
            if output_params is not None:
                types.add(output_params.dtype)
            if len(types) > 1:
                raise PatternMismatchError(
                    f"'{node.name}' mixes quantized types {sorted(str(t) for t in types)}", node
                )

        match = QDQMatch(node, rule, inputs, output_q, output_params, bias)

        for matched in [node] + match.nodes_to_remove:
            if matched.name in self.protected_nodes:
                raise PatternMismatchError(f"'{matched.name}' is protected", node)

        return match

    def _match_input(self, graph, node, rule, position) -> QuantizedInput:
        dq = graph.producer(node.inputs[position])
        if dq is None or DQ_PATTERN.match(dq, graph) is None:
            raise PatternMismatchError(
                f"Input {position} of '{node.name}' is not fed by a single-consumer "
                f"DequantizeLinear",
                node,
            )

        params = get_quant_params(graph, dq)
        if not params.is_per_tensor:
            if not (self.allow_per_channel and position in rule.per_channel_inputs):
                raise PatternMismatchError(
                    f"Input {position} of '{node.name}' has per-channel parameters", node
                )
            self._check_per_channel_axis(node, dq, params, rule)

        data = dq.inputs[0]
        source = graph.producer(data)
        if is_quantize(source):
            if QDQ_SOURCE_PATTERN.match(source, graph) is None:
                raise PatternMismatchError(
                    f"QuantizeLinear '{source.name}' feeding '{dq.name}' has other consumers", node
                )
            source_params = get_quant_params(graph, source)
            if not source_params.equals(params):
                raise PatternMismatchError(
                    f"'{source.name}' {source_params} and '{dq.name}' {params} do not round-trip",
                    node,
                )
            return QuantizedInput(position, dq, params, source)

        if data.dtype is not None and data.dtype != params.dtype:
            raise PatternMismatchError(
                f"'{dq.name}' input '{data.name}' is {data.dtype}, zero point is {params.dtype}",
                node,
            )
        return QuantizedInput(position, dq, params)

    def _check_per_channel_axis(self, node, dq, params, rule):
        shape = dq.inputs[0].shape
        axis = dq.attrs.get("axis", DEFAULT_QDQ_AXIS)
        if axis < 0 and shape is not None:
            axis += len(shape)
        if axis != rule.per_channel_axis:
            raise PatternMismatchError(
                f"'{dq.name}' is per-channel along axis {axis}, "
                f"{rule.fused_op_type} expects axis {rule.per_channel_axis}",
                node,
            )
        if shape is not None and params.scale.size != shape[axis]:
            raise PatternMismatchError(
                f"'{dq.name}' has {params.scale.size} scales for {shape[axis]} channels", node
            )

    def _match_bias(self, graph, node, position, inputs) -> QuantizedInput:
        dq = graph.producer(node.inputs[position])
        context = BIAS_DQ_PATTERN.match(dq, graph) if dq is not None else None
        if context is None:
            raise PatternMismatchError(
                f"Bias of '{node.name}' is not a DequantizeLinear over an initializer", node
            )

        params = get_bias_params(graph, dq)
        bias_value = graph.get_initializer(context.matched_args["bias"])
        if bias_value.dtype != params.dtype:
            raise PatternMismatchError(
                f"Bias '{dq.inputs[0].name}' is {bias_value.dtype}, expected {params.dtype}", node
            )

        expected = (inputs[0].params.scale * inputs[1].params.scale).reshape(-1)
        actual = params.scale.reshape(-1)
        if actual.size == 1 and expected.size > 1:
            actual = np.broadcast_to(actual, expected.shape)
        if actual.shape != expected.shape or not np.allclose(
            actual, expected, rtol=BIAS_SCALE_RTOL, atol=0.0
        ):
            raise PatternMismatchError(
                f"Bias scale of '{node.name}' is not input_scale * weight_scale", node
            )
        return QuantizedInput(position, dq, params)

    def _match_output(self, graph, node, rule):
        out = node.outputs[0]
        consumers = graph.consumers(out)
        if (
            len(out.consumers) == 1
            and not graph.is_graph_output(out)
            and is_quantize(consumers[0])
            and consumers[0].inputs[0] is out
        ):
            q = consumers[0]
            return q, get_quant_params(graph, q)

        if rule.requires_output_q or rule.transparent:
            raise PatternMismatchError(
                f"Output of '{node.name}' does not feed a single QuantizeLinear", node
            )
        return None, None
