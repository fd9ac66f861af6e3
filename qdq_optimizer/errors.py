"""
Error taxonomy for the QDQ optimizer.

Two families:
- MatchFailure and its subclasses are expected outcomes of pattern matching.
  The pass driver logs them and leaves the candidate node untouched.
- GraphConsistencyError means an invariant of the graph was about to be (or
  was) broken. It aborts the pass invocation and reaches the caller.
"""


class QDQOptimizerError(Exception):
    """Base class for all errors raised by qdq_optimizer."""


class MatchFailure(QDQOptimizerError):
    """A candidate node cannot be fused. Never fatal."""

    reason = "mismatch"

    def __init__(self, message="", node=None):
        super().__init__(message)
        self.node = node


class NoRuleError(MatchFailure):
    """No fusion rule is registered for the node's (op_type, domain)."""

    reason = "no_rule"


class PatternMismatchError(MatchFailure):
    """The surrounding Q/DQ structure does not satisfy the fusion rule."""

    reason = "pattern_mismatch"


class NotConstantError(MatchFailure):
    """A scale or zero point operand is not a compile-time constant."""

    reason = "not_constant"


class UnsupportedTypeError(MatchFailure):
    """The zero point element type is outside the supported 8-bit set."""

    reason = "unsupported_type"


class GraphConsistencyError(QDQOptimizerError):
    """Internal consistency failure: dangling consumer, double producer or cycle."""
