import os
from typing import Optional

from .graph import Graph, Node, NodeArg
from .utils.logger import logger as logging, log_match
from .utils.visualize import save_dot


class MatchContext:
    def __init__(self):
        self.matched_nodes = {}  # alias -> Node
        self.matched_args = {}  # alias -> NodeArg (values matched by Any/Const)
        self.all_matched_nodes = set()  # set of node handles


class Pattern:
    def __init__(self, alias=None):
        self.alias = alias
        self.consumer_count = None  # Expected number of outgoing edges

    @log_match
    def match(
        self,
        node: Node,
        graph: Graph,
        context: Optional[MatchContext] = None,
    ) -> Optional[MatchContext]:
        if context is None:
            context = MatchContext()
        if self._match_internal(node, graph, context):
            return context
        return None

    def _match_internal(self, node, graph, context):
        res = self._do_match(node, graph, context)
        if res:
            context.all_matched_nodes.add(node.id)
            if self.alias:
                context.matched_nodes[self.alias] = node
        return res

    def match_arg(self, arg: NodeArg, graph: Graph, context: MatchContext) -> bool:
        """Matches the value feeding an input edge. Node patterns match its producer."""
        producer = graph.producer(arg)
        if producer is None:
            return False
        return self._match_internal(producer, graph, context)

    def _check_consumer_count(self, node, graph):
        if self.consumer_count is None:
            return True
        return graph.consumer_count(node) == self.consumer_count

    def _do_match(self, node, graph, context):
        raise NotImplementedError()


class OpPattern(Pattern):
    def __init__(self, op_type, inputs=None, attrs=None, domain="", alias=None):
        super().__init__(alias)
        self.op_type = op_type
        self.inputs = inputs or []  # List of Pattern
        self.attrs = attrs or {}  # Map of attr_name -> attr_value (or predicate)
        self.domain = domain  # None matches any domain

    def _do_match(self, node, graph, context):
        if self.op_type != "*" and node.op_type != self.op_type:
            return False
        if self.domain is not None and node.domain != self.domain:
            return False

        # Match attributes
        for attr_name, expected in self.attrs.items():
            if attr_name not in node.attrs:
                return False
            actual = node.attrs[attr_name]
            if callable(expected):
                if not expected(actual):
                    return False
            elif actual != expected:
                return False

        # Match inputs
        if self.inputs:
            if len(node.inputs) != len(self.inputs):
                return False
            for arg, input_pattern in zip(node.inputs, self.inputs):
                if not input_pattern.match_arg(arg, graph, context):
                    return False

        return self._check_consumer_count(node, graph)


class WildcardPattern(Pattern):
    """Matches any node, or any value when used as an input pattern."""

    def _do_match(self, node, graph, context):
        return self._check_consumer_count(node, graph)

    def match_arg(self, arg, graph, context):
        producer = graph.producer(arg)
        if producer is not None:
            if not self._match_internal(producer, graph, context):
                return False
        elif self.consumer_count is not None:
            return False
        if self.alias:
            context.matched_args[self.alias] = arg
        return True


class ConstPattern(Pattern):
    """Matches an input edge fed by an initializer, optionally checking its value."""

    def __init__(self, predicate=None, alias=None):
        super().__init__(alias)
        self.predicate = predicate

    def _do_match(self, node, graph, context):
        # A node is never a constant; initializers have no producer
        return False

    def match_arg(self, arg, graph, context):
        if not graph.is_initializer(arg):
            return False
        if self.predicate is not None and not self.predicate(graph.get_initializer(arg)):
            return False
        if self.alias:
            context.matched_args[self.alias] = arg
        return True


# Helper functions to build patterns
def Op(op_type, *inputs, alias=None, attrs=None, domain="", consumer_count=None):
    pattern = OpPattern(op_type, list(inputs), attrs, domain, alias)
    pattern.consumer_count = consumer_count
    return pattern


def Any(alias=None, consumer_count=None):
    pattern = WildcardPattern(alias)
    pattern.consumer_count = consumer_count
    return pattern


def Const(alias=None, predicate=None):
    """Matches a compile-time constant (initializer) input."""
    return ConstPattern(predicate, alias)


class BasePass:
    """Base class for all graph optimization passes."""

    def __init__(self, name=None):
        self.name = name or self.__class__.__name__

    def apply(self, graph: Graph) -> bool:
        """
        Rewrites the graph in place.

        Returns:
            True if the graph was changed.
        """
        raise NotImplementedError()

    def transform(self, graph: Graph, step=None, debug_dir=None) -> bool:
        """
        Applies the pass and, in debug mode, dumps the resulting graph.

        Args:
            graph: The graph to rewrite in place
            step: Optional step number used to name the debug dump
            debug_dir: Optional directory to save a DOT rendering of the result
        """
        changed = self.apply(graph)

        if debug_dir and step is not None:
            os.makedirs(debug_dir, exist_ok=True)
            file_path = os.path.join(debug_dir, f"{step:02d}_{self.name}.dot")
            save_dot(graph, file_path)
            logging.debug(f"[{self.name}] Saved debug graph to {file_path}")

        return changed


class PassRegistry:
    """Registry for managing optimization passes."""

    _registered_passes = {}
    _pass_metadata = {}

    @classmethod
    def register(cls, name, opt_level=1, priority=100):
        """Decorator to register a pass class with an optimization level and priority."""

        def decorator(pass_cls):
            cls._registered_passes[name] = pass_cls
            cls._pass_metadata[name] = {"opt_level": opt_level, "priority": priority}
            return pass_cls

        return decorator

    @classmethod
    def get_pass(cls, name, *args, **kwargs):
        """Creates an instance of the pass by its registered name."""
        if name not in cls._registered_passes:
            raise ValueError(f"Unknown pass: {name}")
        return cls._registered_passes[name](*args, **kwargs)

    @classmethod
    def list_available_passes(cls):
        """Returns a list of all registered pass names."""
        return list(cls._registered_passes.keys())

    @classmethod
    def get_passes_by_level(cls, level):
        """Returns a list of pass names enabled at the given optimization level, sorted by priority."""
        candidates = []
        for name, meta in cls._pass_metadata.items():
            if meta["opt_level"] <= level:
                candidates.append((name, meta["priority"]))

        # Sort by priority (asc), then name (asc)
        candidates.sort(key=lambda x: (x[1], x[0]))

        return [name for name, _ in candidates]
