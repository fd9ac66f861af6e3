"""
Fusion Rule Registry
====================

One immutable entry per supported target op, keyed by (op_type, domain):

  Conv              -> QLinearConv                      (standard domain)
  MatMul            -> QLinearMatMul                    (standard domain)
  Add / Mul         -> QLinearAdd / QLinearMul          (com.microsoft)
  AveragePool       -> QLinearAveragePool               (com.microsoft)
  GlobalAveragePool -> QLinearGlobalAveragePool         (com.microsoft)
  LeakyRelu         -> QLinearLeakyRelu                 (com.microsoft)
  Sigmoid           -> QLinearSigmoid                   (com.microsoft)
  Concat            -> QLinearConcat                    (com.microsoft, variadic)
  MaxPool, Reshape, Transpose, Squeeze, Unsqueeze, Gather
                    -> transparent: the op is kept, its DQ input and Q output
                       are dropped when both carry identical parameters.

The table is built once at import time and exposed read-only.
"""

from dataclasses import dataclass
from types import MappingProxyType
from typing import Callable, Optional, Tuple

from .errors import NoRuleError
from .graph import MS_DOMAIN, STANDARD_DOMAIN


def copy_attributes(attrs):
    return dict(attrs)


def rename_attributes(mapping=None, extra=None):
    """Builds an attribute mapper that renames keys per `mapping` and adds `extra`."""
    mapping = dict(mapping or {})
    extra = dict(extra or {})

    def mapper(attrs):
        result = {mapping.get(key, key): value for key, value in attrs.items()}
        for key, value in extra.items():
            result.setdefault(key, value)
        return result

    return mapper


def triples_then_output(triples, output, bias=None):
    """X, X_scale, X_zp, W, W_scale, W_zp, ..., Y_scale, Y_zp[, B]"""
    inputs = [arg for triple in triples for arg in triple]
    inputs.extend(output)
    if bias is not None:
        inputs.append(bias)
    return inputs


def output_then_triples(triples, output, bias=None):
    """Y_scale, Y_zp, X1, X1_scale, X1_zp, X2, ..."""
    inputs = list(output)
    inputs.extend(arg for triple in triples for arg in triple)
    if bias is not None:
        inputs.append(bias)
    return inputs


@dataclass(frozen=True)
class FusionRule:
    op_type: str
    fused_op_type: Optional[str] = None
    domain: str = STANDARD_DOMAIN
    fused_domain: str = STANDARD_DOMAIN
    quantized_inputs: Tuple[int, ...] = (0,)
    variadic: bool = False
    optional_bias: Optional[int] = None
    requires_output_q: bool = True
    transparent: bool = False
    per_channel_inputs: Tuple[int, ...] = ()
    per_channel_axis: int = 0
    same_type: bool = False
    input_layout: Callable = triples_then_output
    attr_mapper: Callable = copy_attributes

    @property
    def key(self):
        return (self.op_type, self.domain)

    def quantized_positions(self, input_count):
        """Input positions that must be fed by a DequantizeLinear."""
        if self.variadic:
            return tuple(range(input_count))
        return self.quantized_inputs


def _transparent(op_type):
    return FusionRule(op_type=op_type, transparent=True)


def _unary(op_type, fused_op_type, attr_mapper=copy_attributes):
    return FusionRule(
        op_type=op_type,
        fused_op_type=fused_op_type,
        fused_domain=MS_DOMAIN,
        same_type=True,
        attr_mapper=attr_mapper,
    )


_RULES = (
    FusionRule(
        op_type="Conv",
        fused_op_type="QLinearConv",
        quantized_inputs=(0, 1),
        optional_bias=2,
        per_channel_inputs=(1,),
    ),
    FusionRule(
        op_type="MatMul",
        fused_op_type="QLinearMatMul",
        quantized_inputs=(0, 1),
    ),
    FusionRule(
        op_type="Add",
        fused_op_type="QLinearAdd",
        fused_domain=MS_DOMAIN,
        quantized_inputs=(0, 1),
        same_type=True,
    ),
    FusionRule(
        op_type="Mul",
        fused_op_type="QLinearMul",
        fused_domain=MS_DOMAIN,
        quantized_inputs=(0, 1),
        same_type=True,
    ),
    _unary("AveragePool", "QLinearAveragePool"),
    _unary(
        "GlobalAveragePool",
        "QLinearGlobalAveragePool",
        attr_mapper=rename_attributes(extra={"channels_last": 0}),
    ),
    _unary("LeakyRelu", "QLinearLeakyRelu"),
    _unary("Sigmoid", "QLinearSigmoid"),
    FusionRule(
        op_type="Concat",
        fused_op_type="QLinearConcat",
        fused_domain=MS_DOMAIN,
        variadic=True,
        same_type=True,
        input_layout=output_then_triples,
    ),
    _transparent("MaxPool"),
    _transparent("Reshape"),
    _transparent("Transpose"),
    _transparent("Squeeze"),
    _transparent("Unsqueeze"),
    _transparent("Gather"),
)

FUSION_RULES = MappingProxyType({rule.key: rule for rule in _RULES})


def get_fusion_rule(op_type, domain=STANDARD_DOMAIN, rules=FUSION_RULES) -> FusionRule:
    """Looks up the rule for (op_type, domain); raises NoRuleError if absent."""
    rule = rules.get((op_type, domain))
    if rule is None:
        raise NoRuleError(f"No fusion rule for {domain + '.' if domain else ''}{op_type}")
    return rule


def rules_for_ops(op_types, rules=FUSION_RULES):
    """Restricts the table to the given source op types."""
    op_types = set(op_types)
    known = {rule.op_type for rule in rules.values()}
    unknown = op_types - known
    if unknown:
        raise ValueError(f"No fusion rule for op types: {sorted(unknown)}")
    return MappingProxyType(
        {key: rule for key, rule in rules.items() if rule.op_type in op_types}
    )
