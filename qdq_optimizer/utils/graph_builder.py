import numpy as np

from ..graph import Graph, STANDARD_DOMAIN
from ..quantization import DEQUANTIZE_OP, QUANTIZE_OP


class GraphBuilder:
    """
    Helper to build a Graph node by node.

    Values are created with make_* and wired with add_*; generated names are
    unique within the graph. Random tensor contents come from a seeded
    RandomState so graphs are reproducible.
    """

    def __init__(self, name="graph", seed=0):
        self.graph = Graph(name)
        self.rng = np.random.RandomState(seed)
        self._counter = 0

    def _next_name(self, prefix):
        self._counter += 1
        return self.graph.unique_arg_name(f"{prefix}_{self._counter}")

    def make_input(self, shape, dtype=np.float32, name=None):
        return self.graph.add_input(name or self._next_name("input"), dtype, shape)

    def make_output(self, name=None):
        arg = self.graph.get_or_create_arg(name or self._next_name("output"))
        return self.graph.add_output(arg)

    def make_intermediate(self, name=None, dtype=None, shape=None):
        return self.graph.get_or_create_arg(name or self._next_name("intermediate"), dtype, shape)

    def make_initializer(self, shape, low, high, dtype=np.uint8, name=None):
        """Creates an initializer filled with random values in [low, high]."""
        dtype = np.dtype(dtype)
        if np.issubdtype(dtype, np.integer):
            value = self.rng.randint(low, high + 1, size=shape).astype(dtype)
        else:
            value = self.rng.uniform(low, high, size=shape).astype(dtype)
        return self.graph.add_initializer(name or self._next_name("initializer"), value)

    def make_constant(self, value, dtype, name=None):
        """Creates an initializer holding exactly `value` (scalar or array)."""
        return self.graph.add_initializer(
            name or self._next_name("constant"), np.asarray(value, dtype=dtype)
        )

    def make_1d_initializer(self, values, dtype=np.int64, name=None):
        return self.make_constant(np.asarray(values).reshape(-1), dtype, name)

    def add_node(self, op_type, inputs, outputs, name=None, domain=STANDARD_DOMAIN, attrs=None):
        return self.graph.add_node(op_type, inputs, outputs, name=name, domain=domain, attrs=attrs)

    def add_quantize_linear_node(self, input_arg, scale, zero_point, output_arg, dtype=np.uint8):
        scale_arg = self.make_constant(scale, np.float32)
        zp_arg = self.make_constant(zero_point, dtype)
        if output_arg.dtype is None:
            output_arg.dtype = np.dtype(dtype)
        return self.add_node(QUANTIZE_OP, [input_arg, scale_arg, zp_arg], [output_arg])

    def add_dequantize_linear_node(self, input_arg, scale, zero_point, output_arg, dtype=np.uint8, attrs=None):
        scale_arg = self.make_constant(scale, np.float32)
        zp_arg = self.make_constant(zero_point, dtype)
        if output_arg.dtype is None:
            output_arg.dtype = np.dtype(np.float32)
        return self.add_node(
            DEQUANTIZE_OP, [input_arg, scale_arg, zp_arg], [output_arg], attrs=attrs
        )

    def add_qdq_pair(self, q_input, scale, zero_point, dtype=np.uint8):
        """Adds Q -> DQ with identical parameters and returns the DQ output."""
        q_output = self.make_intermediate()
        dq_output = self.make_intermediate()
        self.add_quantize_linear_node(q_input, scale, zero_point, q_output, dtype)
        self.add_dequantize_linear_node(q_output, scale, zero_point, dq_output, dtype)
        return dq_output

    def add_conv_node(self, input_arg, weight_arg, output_arg, bias_arg=None, attrs=None):
        inputs = [input_arg, weight_arg]
        if bias_arg is not None:
            inputs.append(bias_arg)
        return self.add_node("Conv", inputs, [output_arg], attrs=attrs)
