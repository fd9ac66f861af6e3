import numpy as np

from .graph_builder import GraphBuilder


def create_qdq_conv_graph(
    input_shape=(1, 12, 37),
    weights_shape=(32, 12, 5),
    with_bias=False,
    per_channel=False,
):
    """
    Q/DQ around a single Conv:

        input -> Q(.004, 129) -> DQ -> Conv -> Q(.0039, 135) -> output
        W(uint8 initializer) -> DQ(.003, 118) ----^
    """
    builder = GraphBuilder("qdq_conv")
    input_arg = builder.make_input(input_shape, name="input")
    output_arg = builder.make_output(name="output")

    conv_output = builder.make_intermediate("conv_output")
    weight = builder.make_initializer(weights_shape, 0, 255, np.uint8, name="weight")

    dq_w_output = builder.make_intermediate("dq_w_output")
    dq_output = builder.add_qdq_pair(input_arg, 0.004, 129)
    if per_channel:
        channels = weights_shape[0]
        w_scale = np.full((channels,), 0.003, dtype=np.float32) * np.linspace(
            1.0, 2.0, channels, dtype=np.float32
        )
        w_zp = np.full((channels,), 118, dtype=np.uint8)
        builder.add_dequantize_linear_node(weight, w_scale, w_zp, dq_w_output, attrs={"axis": 0})
    else:
        w_scale = np.float32(0.003)
        builder.add_dequantize_linear_node(weight, 0.003, 118, dq_w_output)

    bias_arg = None
    if with_bias:
        bias_scale = np.float32(0.004) * np.asarray(w_scale, dtype=np.float32)
        bias = builder.make_initializer((weights_shape[0],), -1000, 1000, np.int32, name="bias")
        bias_arg = builder.make_intermediate("dq_bias_output")
        builder.add_dequantize_linear_node(bias, bias_scale, 0, bias_arg, dtype=np.int32)

    rank = len(weights_shape) - 2
    builder.add_conv_node(
        dq_output,
        dq_w_output,
        conv_output,
        bias_arg=bias_arg,
        attrs={"kernel_shape": list(weights_shape[2:]), "strides": [1] * rank},
    )
    builder.add_quantize_linear_node(conv_output, 0.0039, 135, output_arg)
    return builder.graph


def create_conv_maxpool_reshape_graph(input_shape=(1, 12, 37), weights_shape=(32, 12, 5)):
    """Conv -> QDQ -> MaxPool -> QDQ -> Reshape -> Q, consistent parameters at each boundary."""
    builder = GraphBuilder("qdq_conv_maxpool_reshape")
    input_arg = builder.make_input(input_shape, name="input")
    output_arg = builder.make_output(name="output")
    weight = builder.make_initializer(weights_shape, 0, 255, np.uint8, name="weight")

    # QDQ + Conv
    dq_w_output = builder.make_intermediate("dq_w_output")
    conv_output = builder.make_intermediate("conv_output")
    dq_conv_output = builder.add_qdq_pair(input_arg, 0.004, 129)
    builder.add_dequantize_linear_node(weight, 0.003, 118, dq_w_output)
    builder.add_conv_node(dq_conv_output, dq_w_output, conv_output)

    # QDQ + MaxPool
    dq_maxpool_output = builder.add_qdq_pair(conv_output, 0.0039, 135)
    maxpool_output = builder.make_intermediate("maxpool_output")
    spatial = len(weights_shape) - 2
    builder.add_node(
        "MaxPool",
        [dq_maxpool_output],
        [maxpool_output],
        name="maxpool",
        attrs={"pads": [1] * (spatial * 2), "kernel_shape": [3] * spatial},
    )

    # QDQ + Reshape
    dq_reshape_output = builder.add_qdq_pair(maxpool_output, 0.0039, 135)
    reshape_shape = builder.make_1d_initializer([-1], np.int64, name="reshape_shape")
    reshape_output = builder.make_intermediate("reshape_output")
    builder.add_node("Reshape", [dq_reshape_output, reshape_shape], [reshape_output], name="reshape")

    builder.add_quantize_linear_node(reshape_output, 0.0039, 135, output_arg)
    return builder.graph


def create_binary_op_graph(op_type, input1_shape=(1, 12, 37), input2_shape=None, dtype=np.uint8):
    """Two independent QDQ pairs feeding a binary op followed by a Q."""
    builder = GraphBuilder(f"qdq_{op_type.lower()}")
    input1_arg = builder.make_input(input1_shape, name="input1")
    input2_arg = builder.make_input(input2_shape or input1_shape, name="input2")
    output_arg = builder.make_output(name="output")

    zero_point = 129 if dtype == np.uint8 else 1
    op_output = builder.make_intermediate(f"{op_type.lower()}_output")
    dq_output1 = builder.add_qdq_pair(input1_arg, 0.004, zero_point, dtype)
    dq_output2 = builder.add_qdq_pair(input2_arg, 0.004, zero_point, dtype)
    builder.add_node(op_type, [dq_output1, dq_output2], [op_output], name=op_type.lower())

    builder.add_quantize_linear_node(op_output, 0.0039, 135 if dtype == np.uint8 else 7, output_arg, dtype)
    return builder.graph


def create_unary_op_graph(op_type, input_shape=(1, 8, 16, 16), attrs=None):
    """input -> QDQ -> op -> Q -> output"""
    builder = GraphBuilder(f"qdq_{op_type.lower()}")
    input_arg = builder.make_input(input_shape, name="input")
    output_arg = builder.make_output(name="output")

    op_output = builder.make_intermediate(f"{op_type.lower()}_output")
    dq_output = builder.add_qdq_pair(input_arg, 0.004, 129)
    builder.add_node(op_type, [dq_output], [op_output], name=op_type.lower(), attrs=attrs)
    builder.add_quantize_linear_node(op_output, 0.0039, 135, output_arg)
    return builder.graph


def create_concat_graph(input_shapes=((1, 4, 8), (1, 6, 8), (1, 2, 8)), axis=1):
    """Several QDQ pairs feeding a Concat followed by a Q."""
    builder = GraphBuilder("qdq_concat")
    output_arg = builder.make_output(name="output")

    dq_outputs = []
    for i, shape in enumerate(input_shapes):
        input_arg = builder.make_input(shape, name=f"input{i}")
        dq_outputs.append(builder.add_qdq_pair(input_arg, 0.004 * (i + 1), 129))

    concat_output = builder.make_intermediate("concat_output")
    builder.add_node("Concat", dq_outputs, [concat_output], name="concat", attrs={"axis": axis})
    builder.add_quantize_linear_node(concat_output, 0.0039, 135, output_arg)
    return builder.graph
