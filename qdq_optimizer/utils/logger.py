import logging
import functools
import time

# Define Log Levels
DEBUG = logging.DEBUG
INFO = logging.INFO
WARNING = logging.WARNING
ERROR = logging.ERROR

LOG_FORMAT = "%(asctime)s - [%(levelname)s] - %(name)s - [%(filename)s:%(lineno)d] - %(message)s"


# Singleton logger setup
def get_logger(name="QDQOptimizer"):
    logger = logging.getLogger(name)
    if not logger.handlers:
        handler = logging.StreamHandler()
        handler.setFormatter(logging.Formatter(LOG_FORMAT))
        logger.addHandler(handler)
        logger.setLevel(logging.INFO)
    return logger


logger = get_logger()


def set_log_level(level):
    logger.setLevel(level)


def trace_transformation(func):
    """Aspect: Log when a rewrite is executed on a match."""

    @functools.wraps(func)
    def wrapper(match, graph, *args, **kwargs):
        start_time = time.time()
        result = func(match, graph, *args, **kwargs)
        duration = (time.time() - start_time) * 1000

        # Only log when a rewrite actually happened
        if result is not None:
            logger.info(
                f"Rewriter {func.__name__} fused {match.target.name} "
                f"({match.target.op_type}) -> {result.name} ({result.qualified_op_type}), "
                f"removed {len(match.nodes_to_remove)} nodes ({duration:.2f}ms)"
            )
        else:
            logger.debug(f"Rewriter {func.__name__} returned None")
        return result

    return wrapper


def log_optimization(func):
    """Aspect: Log the overall optimization process."""

    @functools.wraps(func)
    def wrapper(self, graph, *args, **kwargs):
        prefix = f"[{self.name}] "
        original_node_count = len(graph)
        logger.info(f"{prefix}Starting graph optimization pass... ({original_node_count} nodes)")
        start_time = time.time()

        changed = func(self, graph, *args, **kwargs)

        duration = time.time() - start_time
        logger.info(
            f"{prefix}Optimization finished in {duration:.3f}s. "
            f"Nodes: {original_node_count} -> {len(graph)}"
        )
        return changed

    return wrapper


def log_match(func):
    """Aspect: Log matching attempts (DEBUG level)."""

    @functools.wraps(func)
    def wrapper(self, node, graph, context=None):
        res = func(self, node, graph, context)
        if res:
            logger.debug(f"Matched pattern on node: {node.name} (Op: {node.op_type})")
        return res

    return wrapper
