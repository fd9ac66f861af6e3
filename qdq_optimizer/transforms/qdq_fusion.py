"""
QDQ Fusion Pass
===============

Purpose:
--------
Replaces fake-quantized floating point regions (QuantizeLinear ->
DequantizeLinear pairs around an operator) with native low-precision
operators, and drops Q/DQ pairs around quantization-transparent operators.

Algorithm:
----------
1. Snapshot the graph (rollback point) and a stable topological order.
2. For each node of the snapshot still alive, ask the matcher for a QDQMatch.
   NoRule / mismatch outcomes leave the node as is.
3. Hand each match to the rewriter, which edits the graph in place.
4. Drop initializers that became unused, then validate the graph. Any
   GraphConsistencyError restores the snapshot and is re-raised.

Nodes created during the sweep are not visited again, and a second apply()
on the result is a no-op.

Example:
--------
  x -> Q -> DQ --+
  W -> DQ -------> Conv -> Q -> y

After QDQFusionPass:
  x -> Q -> QLinearConv -> y
       W ----^

Relationships:
--------------
- Registered at opt_level 2; an external driver may re-run it to a fixpoint.
"""

import collections

from ..core import BasePass, PassRegistry
from ..errors import GraphConsistencyError, MatchFailure, NoRuleError
from ..matcher import QDQMatcher
from ..rewriter import QDQRewriter
from ..rules import FUSION_RULES, rules_for_ops
from ..utils.logger import logger as logging, log_optimization


@PassRegistry.register("qdq_fusion", opt_level=2, priority=30)
class QDQFusionPass(BasePass):
    """
    Fuses Q/DQ-wrapped operators into QLinear* operators.

    Args:
        enabled_ops: Source op types to fuse (default: every registered rule).
        allow_per_channel: Accept per-channel weight scales where the fused op supports them.
        protected_nodes: Node names that must not be rewritten or deleted.
        validate: Validate graph well-formedness after a changing sweep.
        config: Optional dict whose keys match the arguments above.
    """

    def __init__(
        self,
        enabled_ops=None,
        allow_per_channel=True,
        protected_nodes=None,
        validate=True,
        config=None,
    ):
        super().__init__(name="QDQFusion")
        self.enabled_ops = list(enabled_ops) if enabled_ops is not None else None
        self.allow_per_channel = allow_per_channel
        self.protected_nodes = list(protected_nodes or [])
        self.validate = validate

        if config:
            self._apply_config(config)

        rules = FUSION_RULES if self.enabled_ops is None else rules_for_ops(self.enabled_ops)
        self.matcher = QDQMatcher(
            rules,
            allow_per_channel=self.allow_per_channel,
            protected_nodes=self.protected_nodes,
        )
        self.rewriter = QDQRewriter()
        self.stats = self._empty_stats()

    def _apply_config(self, config):
        """Merges configuration dict into instance attributes."""
        for key, value in config.items():
            if key == "enabled_ops":
                self.enabled_ops = list(value) if value is not None else None
            elif key == "allow_per_channel":
                self.allow_per_channel = bool(value)
            elif key == "protected_nodes":
                self.protected_nodes.extend(value)
            elif key == "validate":
                self.validate = bool(value)
            else:
                logging.warning(f"[{self.name}] Ignoring unknown config key '{key}'")

    @staticmethod
    def _empty_stats():
        return {
            "fusions": 0,
            "transparent": 0,
            "mismatches": 0,
            "fused_ops": collections.Counter(),
            "removed_initializers": 0,
        }

    @property
    def fusion_count(self):
        return self.stats["fusions"]

    @log_optimization
    def apply(self, graph) -> bool:
        self.stats = self._empty_stats()
        backup = graph.copy()
        unused_before = {
            name for name in graph.initializers if not graph.get_arg(name).consumers
        }

        try:
            changed = self._sweep(graph)
            if changed:
                self._remove_dead_initializers(graph, unused_before)
                if self.validate:
                    graph.validate()
        except GraphConsistencyError as e:
            logging.error(f"[{self.name}] Internal consistency failure: {e}")
            logging.warning(f"[{self.name}] Rolling back graph state before the pass...")
            graph.restore(backup)
            raise

        if changed:
            summary = ", ".join(f"{op}={n}" for op, n in sorted(self.stats["fused_ops"].items()))
            logging.info(f"[{self.name}] Performed {self.fusion_count} fusions ({summary})")
        return changed

    def _sweep(self, graph):
        changed = False
        for node in graph.topological_order():
            # Consumed by an earlier rewrite in this sweep
            if not graph.has_node(node):
                continue

            try:
                match = self.matcher.match(graph, node)
            except NoRuleError:
                continue
            except MatchFailure as e:
                self.stats["mismatches"] += 1
                logging.debug(f"[{self.name}] Skipping {node.name} ({e.reason}): {e}")
                continue

            result = self.rewriter.rewrite(graph, match)
            changed = True
            self.stats["fusions"] += 1
            if match.rule.transparent:
                self.stats["transparent"] += 1
            self.stats["fused_ops"][result.qualified_op_type] += 1
        return changed

    def _remove_dead_initializers(self, graph, unused_before):
        # Only drop initializers this sweep made dead
        dead = graph.remove_unused_initializers(keep=unused_before)
        self.stats["removed_initializers"] = len(dead)
        if dead:
            logging.debug(f"[{self.name}] Removed {len(dead)} dead initializers")
