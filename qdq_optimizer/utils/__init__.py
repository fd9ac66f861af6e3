from .graph_utils import (
    count_ops,
    check_external_consumers,
    log_external_consumer_warning,
)
from .graph_builder import GraphBuilder
from .generators import (
    create_qdq_conv_graph,
    create_conv_maxpool_reshape_graph,
    create_binary_op_graph,
    create_unary_op_graph,
    create_concat_graph,
)
from .logger import logger
from .visualize import export_to_dot, save_dot

__all__ = [
    # graph_utils
    "count_ops",
    "check_external_consumers",
    "log_external_consumer_warning",
    # graph_builder
    "GraphBuilder",
    # generators
    "create_qdq_conv_graph",
    "create_conv_maxpool_reshape_graph",
    "create_binary_op_graph",
    "create_unary_op_graph",
    "create_concat_graph",
    # logger
    "logger",
    # visualize
    "export_to_dot",
    "save_dot",
]
