"""
Complex Graph Consistency Tests
================================

针对 QDQ 融合 Pass，构建包含多种算子的复合图，验证优化前后的一致性。
由于没有执行引擎，主要验证：
1. 拓扑结构是否连通且合法（validate）。
2. 图的输入、输出 NodeArg 保持不变。
3. 反复执行直到不动点时，第二轮不再产生改动。
"""

import unittest

import numpy as np

from qdq_optimizer import PassRegistry
from qdq_optimizer.utils.graph_builder import GraphBuilder
from qdq_optimizer.utils.graph_utils import count_ops


def create_residual_graph():
    """
    input -> QDQ -> Conv -> QDQ -> MaxPool -> Q --> DQ --> Add -> Q -> output
                                                +-> DQ --^
                    W -> DQ --^
    """
    builder = GraphBuilder("residual")
    x = builder.make_input((1, 8, 16, 16), name="input")
    out = builder.make_output(name="output")
    w = builder.make_initializer((8, 8, 3, 3), 0, 255, np.uint8, name="weight")

    dq_x = builder.add_qdq_pair(x, 0.004, 129)
    dq_w = builder.make_intermediate("dq_w")
    builder.add_dequantize_linear_node(w, 0.003, 118, dq_w)
    conv_out = builder.make_intermediate("conv_output")
    builder.add_conv_node(dq_x, dq_w, conv_out, attrs={"kernel_shape": [3, 3], "pads": [1, 1, 1, 1]})

    dq_conv = builder.add_qdq_pair(conv_out, 0.0039, 135)
    pool_out = builder.make_intermediate("pool_output")
    builder.add_node("MaxPool", [dq_conv], [pool_out], name="pool", attrs={"kernel_shape": [1, 1]})

    q_pool = builder.make_intermediate("q_pool")
    builder.add_quantize_linear_node(pool_out, 0.0039, 135, q_pool)
    dq_a = builder.make_intermediate("dq_a")
    dq_b = builder.make_intermediate("dq_b")
    builder.add_dequantize_linear_node(q_pool, 0.0039, 135, dq_a)
    builder.add_dequantize_linear_node(q_pool, 0.0039, 135, dq_b)

    add_out = builder.make_intermediate("add_output")
    builder.add_node("Add", [dq_a, dq_b], [add_out], name="add")
    builder.add_quantize_linear_node(add_out, 0.008, 128, out)
    return builder.graph


class TestPassConsistency(unittest.TestCase):
    def test_residual_graph(self):
        graph = create_residual_graph()
        inputs = list(graph.inputs)
        outputs = list(graph.outputs)

        p = PassRegistry.get_pass("qdq_fusion")
        self.assertTrue(p.apply(graph))
        self.assertTrue(graph.validate())

        ops = count_ops(graph)
        self.assertEqual(ops["QLinearConv"], 1)
        self.assertEqual(ops["MaxPool"], 1)
        self.assertEqual(ops["com.microsoft.QLinearAdd"], 1)
        self.assertEqual(ops["QuantizeLinear"], 1)
        self.assertEqual(ops["DequantizeLinear"], 0)
        self.assertEqual(len(graph), 4)

        self.assertEqual(graph.inputs, inputs)
        self.assertEqual(graph.outputs, outputs)

        add = graph.get_node_by_name("add")
        pool = graph.get_node_by_name("pool")
        # Both operand triples read the pooled integer tensor
        self.assertIs(add.inputs[0], pool.outputs[0])
        self.assertIs(add.inputs[3], pool.outputs[0])
        self.assertIs(graph.producer(graph.get_arg("output")), add)

    def test_fixpoint_driver(self):
        graph = create_residual_graph()
        names = PassRegistry.get_passes_by_level(2)
        self.assertIn("qdq_fusion", names)

        rounds = 0
        changed = True
        while changed:
            changed = PassRegistry.get_pass("qdq_fusion").apply(graph)
            rounds += 1
        self.assertEqual(rounds, 2)
        self.assertTrue(graph.validate())

    def test_no_candidates(self):
        builder = GraphBuilder("float_only")
        x = builder.make_input((1, 4), name="input")
        builder.add_node("Relu", [x], [builder.make_output(name="output")], name="relu")
        graph = builder.graph

        p = PassRegistry.get_pass("qdq_fusion")
        self.assertFalse(p.apply(graph))
        self.assertEqual(p.stats["mismatches"], 0)
        self.assertEqual([n.name for n in graph.nodes], ["relu"])


if __name__ == "__main__":
    unittest.main()
