"""
Graph Model Tests - 图模型测试
==============================

测试内容：
1. test_add_node_wires_edges          - add_node 同时维护 producer / consumer 两端
2. test_double_producer_rejected      - 同一 NodeArg 不允许有两个 producer
3. test_remove_nodes_atomic           - 批量删除前先校验，失败时图保持不变
4. test_remove_nodes_preserved_output - preserved 输出保留给新的 producer
5. test_replace_input_output          - 输入/输出重定向
6. test_topological_order_stable      - 稳定拓扑序（句柄小者优先）
7. test_cycle_detected                - 环检测
8. test_copy_restore                  - 快照与原地恢复
"""

import unittest

import numpy as np

from qdq_optimizer.errors import GraphConsistencyError
from qdq_optimizer.graph import Graph, MS_DOMAIN


class TestGraphModel(unittest.TestCase):
    """图模型基础操作测试套件。"""

    def setUp(self):
        self.graph = Graph("test")
        self.x = self.graph.add_input("x", np.float32, (1, 4))
        self.w = self.graph.add_initializer("w", np.ones((4, 4), dtype=np.float32))

    def _chain(self):
        """x -> Relu(a) -> MatMul(b, w) -> y"""
        a = self.graph.add_node("Relu", [self.x], ["a_out"], name="a")
        b = self.graph.add_node("MatMul", ["a_out", self.w], ["y"], name="b")
        self.graph.add_output("y")
        return a, b

    def test_add_node_wires_edges(self):
        a, b = self._chain()
        a_out = self.graph.get_arg("a_out")

        self.assertIs(self.graph.producer(a_out), a)
        self.assertEqual(self.graph.consumers(a_out), [b])
        self.assertEqual(self.graph.consumers(self.x), [a])
        self.assertIsNone(self.graph.producer(self.w))
        self.assertEqual(self.graph.consumer_count(a), 1)
        # Graph output use counts as one edge
        self.assertEqual(self.graph.consumer_count(b), 1)
        self.assertEqual(len(self.graph), 2)
        self.assertIs(self.graph.get_node_by_name("b"), b)
        self.assertIs(self.graph.get_node(a.id), a)

    def test_same_input_twice_counts_two_edges(self):
        node = self.graph.add_node("Add", [self.x, self.x], ["sum"], name="add")
        self.assertEqual(self.x.consumers, [node.id, node.id])
        self.assertEqual(self.graph.consumers(self.x), [node])

    def test_qualified_op_type(self):
        node = self.graph.add_node("QLinearAdd", [self.x], ["q"], domain=MS_DOMAIN)
        self.assertEqual(node.qualified_op_type, "com.microsoft.QLinearAdd")
        self.assertEqual(node.name, "QLinearAdd")

    def test_double_producer_rejected(self):
        self._chain()
        with self.assertRaises(GraphConsistencyError):
            self.graph.add_node("Identity", [self.x], ["a_out"])
        with self.assertRaises(GraphConsistencyError):
            self.graph.add_node("Identity", [self.x], [self.w])
        with self.assertRaises(GraphConsistencyError):
            self.graph.add_node("Identity", [self.x], ["z"], name="a")

    def test_remove_nodes_atomic(self):
        a, b = self._chain()
        with self.assertRaises(GraphConsistencyError):
            # 'a_out' is still consumed by 'b'
            self.graph.remove_nodes([a])
        self.assertTrue(self.graph.has_node(a))
        self.assertEqual(self.graph.get_arg("a_out").consumers, [b.id])

        with self.assertRaises(GraphConsistencyError):
            # 'y' is a graph output
            self.graph.remove_nodes([a, b])
        self.assertEqual(len(self.graph), 2)
        self.assertTrue(self.graph.validate())

    def test_remove_nodes_preserved_output(self):
        a, b = self._chain()
        y = self.graph.get_arg("y")
        self.graph.remove_nodes([a, b], preserved_outputs=[y])

        self.assertEqual(len(self.graph), 0)
        self.assertIsNone(self.graph.get_arg("a_out"))
        self.assertIs(self.graph.get_arg("y"), y)
        self.assertEqual(self.x.consumers, [])
        # Initializers survive even when unused
        self.assertIsNotNone(self.graph.get_arg("w"))

        fused = self.graph.add_node("Fused", [self.x, self.w], [y], name="b")
        self.assertIs(self.graph.producer(y), fused)
        self.assertTrue(self.graph.validate())

    def test_replace_input_output(self):
        a, b = self._chain()
        self.graph.replace_input(b, 0, self.x)
        self.assertEqual(self.graph.get_arg("a_out").consumers, [])
        self.assertEqual(self.graph.consumers(self.x), [a, b])

        z = self.graph.get_or_create_arg("z")
        self.graph.replace_output(a, 0, z)
        self.assertIs(self.graph.producer(z), a)
        self.assertIsNone(self.graph.get_arg("a_out"))

        with self.assertRaises(GraphConsistencyError):
            # 'y' is still a graph output
            self.graph.replace_output(b, 0, self.graph.get_or_create_arg("y2"))

    def test_topological_order_stable(self):
        c = self.graph.add_node("Relu", ["b_out"], ["c_out"], name="c")
        b = self.graph.add_node("Relu", [self.x], ["b_out"], name="b")
        d = self.graph.add_node("Relu", [self.x], ["d_out"], name="d")
        order = self.graph.topological_order()
        self.assertEqual([n.name for n in order], ["b", "c", "d"])
        self.assertEqual(order, [b, c, d])

    def test_cycle_detected(self):
        self.graph.add_node("Relu", ["q"], ["p"], name="first")
        self.graph.add_node("Relu", ["p"], ["q"], name="second")
        with self.assertRaises(GraphConsistencyError):
            self.graph.topological_order()
        with self.assertRaises(GraphConsistencyError):
            self.graph.validate()

    def test_dangling_input_invalid(self):
        self.graph.add_node("Relu", ["missing"], ["out"], name="r")
        with self.assertRaises(GraphConsistencyError):
            self.graph.validate()

    def test_remove_unused_initializers(self):
        self._chain()
        self.graph.add_initializer("unused", np.zeros((2,), dtype=np.int8))
        self.assertEqual(self.graph.remove_unused_initializers(), ["unused"])
        self.assertIn("w", self.graph.initializers)
        self.assertIsNone(self.graph.get_arg("unused"))
        with self.assertRaises(GraphConsistencyError):
            self.graph.remove_initializer("w")

    def test_remove_unused_initializers_keep(self):
        self._chain()
        self.graph.add_initializer("stale", np.zeros((2,), dtype=np.int8))
        self.graph.add_initializer("dead", np.zeros((2,), dtype=np.int8))
        self.assertEqual(self.graph.remove_unused_initializers(keep={"stale"}), ["dead"])
        self.assertIn("stale", self.graph.initializers)
        self.assertIn("w", self.graph.initializers)

    def test_copy_restore(self):
        a, b = self._chain()
        snapshot = self.graph.copy()

        self.graph.remove_nodes([a, b], preserved_outputs=[self.graph.get_arg("y")])
        self.assertEqual(len(self.graph), 0)

        self.graph.restore(snapshot)
        self.assertEqual([n.name for n in self.graph.nodes], ["a", "b"])
        self.assertTrue(self.graph.validate())
        # The snapshot stays independent of the restored graph
        self.assertIsNot(self.graph.get_node_by_name("a"), snapshot.get_node_by_name("a"))


if __name__ == "__main__":
    unittest.main()
