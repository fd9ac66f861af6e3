"""
Quantization Metadata Extractor
===============================

Reads the (scale, zero point, element type) operands of QuantizeLinear and
DequantizeLinear nodes. Both operands must be initializers so the values are
known at optimization time. Only 8-bit zero points are supported for
activations and weights; int32 is accepted solely for Conv bias operands.

Pure read: nothing here mutates the graph.
"""

import numpy as np

from .errors import NotConstantError, PatternMismatchError, UnsupportedTypeError

QUANTIZE_OP = "QuantizeLinear"
DEQUANTIZE_OP = "DequantizeLinear"

# ONNX default for the per-axis quantization dimension
DEFAULT_QDQ_AXIS = 1

SUPPORTED_ZERO_POINT_TYPES = (np.dtype(np.uint8), np.dtype(np.int8))
BIAS_ZERO_POINT_TYPE = np.dtype(np.int32)


class QuantParams:
    """Scale / zero point pair read from a Q or DQ node."""

    def __init__(self, scale, zero_point, dtype=None):
        self.scale = np.asarray(scale, dtype=np.float32)
        self.zero_point = np.asarray(zero_point)
        self.dtype = np.dtype(dtype) if dtype is not None else self.zero_point.dtype

    @property
    def is_per_tensor(self) -> bool:
        return self.scale.size == 1 and self.zero_point.size == 1

    def equals(self, other: "QuantParams") -> bool:
        """Exact equality of element type, shapes and values."""
        if other is None or self.dtype != other.dtype:
            return False
        if self.scale.shape != other.scale.shape:
            return False
        if self.zero_point.shape != other.zero_point.shape:
            return False
        return bool(
            np.array_equal(self.scale, other.scale)
            and np.array_equal(self.zero_point, other.zero_point)
        )

    def __repr__(self) -> str:
        scale = self.scale.tolist()
        zero_point = self.zero_point.tolist()
        return f"QuantParams(scale={scale}, zero_point={zero_point}, dtype={self.dtype})"


def is_quantize(node) -> bool:
    return node is not None and node.op_type == QUANTIZE_OP and node.domain == ""


def is_dequantize(node) -> bool:
    return node is not None and node.op_type == DEQUANTIZE_OP and node.domain == ""


def _read_operands(graph, node):
    if not (is_quantize(node) or is_dequantize(node)):
        raise PatternMismatchError(
            f"Node '{node.name}' ({node.op_type}) is not a QuantizeLinear/DequantizeLinear",
            node,
        )
    if len(node.inputs) < 3:
        raise NotConstantError(f"Node '{node.name}' has no zero point operand", node)

    scale_arg, zp_arg = node.inputs[1], node.inputs[2]
    scale = graph.get_initializer(scale_arg)
    if scale is None:
        raise NotConstantError(
            f"Scale '{scale_arg.name}' of '{node.name}' is not a constant initializer", node
        )
    zero_point = graph.get_initializer(zp_arg)
    if zero_point is None:
        raise NotConstantError(
            f"Zero point '{zp_arg.name}' of '{node.name}' is not a constant initializer", node
        )
    return scale, zero_point


def get_quant_params(graph, node) -> QuantParams:
    """
    Extracts the quantization parameters of a Q or DQ node.

    Raises:
        NotConstantError: scale or zero point is not an initializer.
        UnsupportedTypeError: zero point type is not uint8/int8.
    """
    scale, zero_point = _read_operands(graph, node)
    if zero_point.dtype not in SUPPORTED_ZERO_POINT_TYPES:
        raise UnsupportedTypeError(
            f"Zero point of '{node.name}' has unsupported type {zero_point.dtype}", node
        )
    return QuantParams(scale, zero_point, zero_point.dtype)


def get_bias_params(graph, node) -> QuantParams:
    """Extracts int32 bias parameters; the zero point must be all zeros."""
    scale, zero_point = _read_operands(graph, node)
    if zero_point.dtype != BIAS_ZERO_POINT_TYPE:
        raise UnsupportedTypeError(
            f"Bias zero point of '{node.name}' must be int32, got {zero_point.dtype}", node
        )
    if np.any(zero_point != 0):
        raise PatternMismatchError(f"Bias zero point of '{node.name}' is not zero", node)
    return QuantParams(scale, zero_point, zero_point.dtype)
