from .core import (
    OpPattern,
    WildcardPattern,
    ConstPattern,
    Op,
    Any,
    Const,
    BasePass,
    PassRegistry,
)
from .errors import (
    QDQOptimizerError,
    MatchFailure,
    NoRuleError,
    PatternMismatchError,
    NotConstantError,
    UnsupportedTypeError,
    GraphConsistencyError,
)
from .graph import Graph, Node, NodeArg, STANDARD_DOMAIN, MS_DOMAIN
from .quantization import QuantParams, get_quant_params, get_bias_params
from .rules import FusionRule, FUSION_RULES, get_fusion_rule, rules_for_ops
from .matcher import QDQMatch, QDQMatcher, QuantizedInput
from .rewriter import QDQRewriter
from .utils.logger import set_log_level, DEBUG, INFO, WARNING, ERROR

# Import transforms to register all passes
from . import transforms
from .transforms import QDQFusionPass

__all__ = [
    "OpPattern",
    "WildcardPattern",
    "ConstPattern",
    "Op",
    "Any",
    "Const",
    "BasePass",
    "PassRegistry",
    "QDQOptimizerError",
    "MatchFailure",
    "NoRuleError",
    "PatternMismatchError",
    "NotConstantError",
    "UnsupportedTypeError",
    "GraphConsistencyError",
    "Graph",
    "Node",
    "NodeArg",
    "STANDARD_DOMAIN",
    "MS_DOMAIN",
    "QuantParams",
    "get_quant_params",
    "get_bias_params",
    "FusionRule",
    "FUSION_RULES",
    "get_fusion_rule",
    "rules_for_ops",
    "QDQMatch",
    "QDQMatcher",
    "QuantizedInput",
    "QDQRewriter",
    "QDQFusionPass",
    "set_log_level",
    "DEBUG",
    "INFO",
    "WARNING",
    "ERROR",
]
