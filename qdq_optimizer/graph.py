"""
In-memory computation graph used by the QDQ optimizer.

Nodes live in an arena keyed by a stable integer handle. Tensor values are
NodeArg records that hold a single producer handle and the list of consumer
handles, so every mutation primitive updates both sides of an edge together.
"""

import collections
import copy
import heapq
from typing import Dict, Iterable, List, Optional

import numpy as np

from .errors import GraphConsistencyError

STANDARD_DOMAIN = ""
MS_DOMAIN = "com.microsoft"


class NodeArg:
    """A named tensor value with at most one producer and any number of consumers."""

    def __init__(self, name: str, dtype=None, shape=None):
        self.name = name
        self.dtype = np.dtype(dtype) if dtype is not None else None
        self.shape = tuple(shape) if shape is not None else None
        self.producer: Optional[int] = None  # node handle
        self.consumers: List[int] = []  # node handles, one entry per edge

    def __repr__(self) -> str:
        return f"NodeArg(name='{self.name}', dtype={self.dtype}, shape={self.shape})"


class Node:
    """A single operator. Created and removed only through Graph."""

    def __init__(self, node_id: int, name: str, op_type: str, domain: str = "", attrs=None):
        self.id = node_id
        self.name = name
        self.op_type = op_type
        self.domain = domain
        self.inputs: List[NodeArg] = []
        self.outputs: List[NodeArg] = []
        self.attrs = dict(attrs or {})

    @property
    def input_names(self) -> List[str]:
        return [arg.name for arg in self.inputs]

    @property
    def output_names(self) -> List[str]:
        return [arg.name for arg in self.outputs]

    @property
    def qualified_op_type(self) -> str:
        """op_type prefixed by its domain for non-standard domains."""
        if self.domain:
            return f"{self.domain}.{self.op_type}"
        return self.op_type

    def __repr__(self) -> str:
        return (
            f"Node(id={self.id}, name='{self.name}', op_type='{self.qualified_op_type}')"
        )

    def __str__(self) -> str:
        inputs_str = ", ".join(self.input_names)
        outputs_str = ", ".join(self.output_names)
        return f"{outputs_str} = {self.qualified_op_type}({inputs_str})"


class Graph:
    """
    Owns the nodes, NodeArgs, graph inputs/outputs and initializers.

    Invariants kept by every mutation primitive:
    - each NodeArg has at most one producer;
    - every consumer handle of a NodeArg refers to a live node listing it as input;
    - initializers and graph inputs are never produced by a node.
    """

    def __init__(self, name: str = "graph"):
        self.name = name
        self._nodes: Dict[int, Node] = {}
        self._node_names: Dict[str, int] = {}
        self._args: Dict[str, NodeArg] = {}
        self.inputs: List[NodeArg] = []
        self.outputs: List[NodeArg] = []
        self.initializers: Dict[str, np.ndarray] = {}
        self._next_id = 0

    # -----------------------
    # Lookup
    # -----------------------

    @property
    def nodes(self) -> List[Node]:
        """Live nodes in insertion order."""
        return list(self._nodes.values())

    def __len__(self) -> int:
        return len(self._nodes)

    def __repr__(self) -> str:
        return (
            f"Graph(name='{self.name}', nodes={len(self._nodes)}, "
            f"inputs={len(self.inputs)}, outputs={len(self.outputs)}, "
            f"initializers={len(self.initializers)})"
        )

    def get_node(self, handle: int) -> Optional[Node]:
        return self._nodes.get(handle)

    def get_node_by_name(self, name: str) -> Optional[Node]:
        handle = self._node_names.get(name)
        return self._nodes.get(handle) if handle is not None else None

    def has_node(self, node: Node) -> bool:
        return self._nodes.get(node.id) is node

    def get_arg(self, name: str) -> Optional[NodeArg]:
        return self._args.get(name)

    def get_or_create_arg(self, name: str, dtype=None, shape=None) -> NodeArg:
        arg = self._args.get(name)
        if arg is None:
            arg = NodeArg(name, dtype, shape)
            self._args[name] = arg
            return arg
        if arg.dtype is None and dtype is not None:
            arg.dtype = np.dtype(dtype)
        if arg.shape is None and shape is not None:
            arg.shape = tuple(shape)
        return arg

    def unique_node_name(self, base: str) -> str:
        if base not in self._node_names:
            return base
        i = 1
        while f"{base}_{i}" in self._node_names:
            i += 1
        return f"{base}_{i}"

    def unique_arg_name(self, base: str) -> str:
        if base not in self._args:
            return base
        i = 1
        while f"{base}_{i}" in self._args:
            i += 1
        return f"{base}_{i}"

    def producer(self, arg: NodeArg) -> Optional[Node]:
        """Returns the node producing `arg`, or None for graph inputs and initializers."""
        if arg.producer is None:
            return None
        return self._nodes.get(arg.producer)

    def consumers(self, arg: NodeArg) -> List[Node]:
        """Distinct consumer nodes of `arg`, in first-use order."""
        seen = set()
        result = []
        for handle in arg.consumers:
            if handle not in seen:
                seen.add(handle)
                result.append(self._nodes[handle])
        return result

    def consumer_count(self, node: Node) -> int:
        """Number of edges leaving `node`; each graph-output use counts as one."""
        count = 0
        for arg in node.outputs:
            count += len(arg.consumers)
            if self.is_graph_output(arg):
                count += 1
        return count

    def is_initializer(self, arg: NodeArg) -> bool:
        return arg.name in self.initializers and self._args.get(arg.name) is arg

    def get_initializer(self, arg: NodeArg) -> Optional[np.ndarray]:
        if not self.is_initializer(arg):
            return None
        return self.initializers[arg.name]

    def is_graph_input(self, arg: NodeArg) -> bool:
        return any(a is arg for a in self.inputs)

    def is_graph_output(self, arg: NodeArg) -> bool:
        return any(a is arg for a in self.outputs)

    # -----------------------
    # Graph-level declarations
    # -----------------------

    def add_input(self, name: str, dtype=np.float32, shape=None) -> NodeArg:
        arg = self.get_or_create_arg(name, dtype, shape)
        if arg.producer is not None or self.is_initializer(arg):
            raise GraphConsistencyError(
                f"Graph input '{name}' is already produced by a node or an initializer"
            )
        if not self.is_graph_input(arg):
            self.inputs.append(arg)
        return arg

    def add_output(self, arg_or_name) -> NodeArg:
        arg = self._resolve_arg(arg_or_name)
        if not self.is_graph_output(arg):
            self.outputs.append(arg)
        return arg

    def add_initializer(self, name: str, value, dtype=None) -> NodeArg:
        array = np.asarray(value, dtype=dtype)
        arg = self.get_or_create_arg(name, array.dtype, array.shape)
        if arg.producer is not None or self.is_graph_input(arg):
            raise GraphConsistencyError(
                f"Initializer '{name}' collides with a produced value or graph input"
            )
        self.initializers[name] = array
        return arg

    def _resolve_arg(self, arg_or_name) -> NodeArg:
        if isinstance(arg_or_name, str):
            return self.get_or_create_arg(arg_or_name)
        if self._args.get(arg_or_name.name) is not arg_or_name:
            raise GraphConsistencyError(
                f"NodeArg '{arg_or_name.name}' does not belong to graph '{self.name}'"
            )
        return arg_or_name

    # -----------------------
    # Mutation primitives
    # -----------------------

    def add_node(
        self,
        op_type: str,
        inputs: Iterable,
        outputs: Iterable,
        name: Optional[str] = None,
        domain: str = STANDARD_DOMAIN,
        attrs=None,
    ) -> Node:
        """
        Adds a node and wires it to its input and output NodeArgs.

        Args:
            op_type: Operator type, e.g. 'Conv'.
            inputs: NodeArgs or names consumed by the node, in order.
            outputs: NodeArgs or names produced by the node. None of them may
                already have a producer.
            name: Unique node name; generated from op_type when omitted.
            domain: Operator domain ('' for the standard domain).
            attrs: Attribute dict, copied.

        Returns:
            The new Node.
        """
        input_args = [self._resolve_arg(a) for a in inputs]
        output_args = [self._resolve_arg(a) for a in outputs]

        if name is None:
            name = self.unique_node_name(op_type)
        elif name in self._node_names:
            raise GraphConsistencyError(f"Node with name '{name}' already exists")

        if len({id(a) for a in output_args}) != len(output_args):
            raise GraphConsistencyError(f"Node '{name}' lists the same output twice")
        for arg in output_args:
            if arg.producer is not None:
                owner = self._nodes[arg.producer].name
                raise GraphConsistencyError(
                    f"NodeArg '{arg.name}' is already produced by '{owner}'"
                )
            if self.is_initializer(arg) or self.is_graph_input(arg):
                raise GraphConsistencyError(
                    f"NodeArg '{arg.name}' is a graph input or initializer and cannot be produced"
                )

        node = Node(self._next_id, name, op_type, domain, attrs)
        self._next_id += 1
        node.inputs = input_args
        node.outputs = output_args
        for arg in input_args:
            arg.consumers.append(node.id)
        for arg in output_args:
            arg.producer = node.id

        self._nodes[node.id] = node
        self._node_names[name] = node.id
        return node

    def remove_nodes(self, nodes: Iterable[Node], preserved_outputs: Iterable[NodeArg] = ()):
        """
        Atomically removes a batch of nodes.

        Each output of a removed node must be consumed only by nodes of the
        same batch and must not be a graph output, unless it is listed in
        `preserved_outputs` (it keeps its consumers and waits for a new
        producer). All checks run before the first mutation, so a violation
        leaves the graph unchanged.

        Raises:
            GraphConsistencyError: if removal would leave a dangling consumer.
        """
        doomed: Dict[int, Node] = {}
        for node in nodes:
            if not self.has_node(node):
                raise GraphConsistencyError(f"Node '{node.name}' is not part of the graph")
            doomed[node.id] = node
        preserved = {id(arg) for arg in preserved_outputs}

        for node in doomed.values():
            for arg in node.outputs:
                if id(arg) in preserved:
                    continue
                if self.is_graph_output(arg):
                    raise GraphConsistencyError(
                        f"Cannot remove '{node.name}': output '{arg.name}' is a graph output"
                    )
                external = [h for h in arg.consumers if h not in doomed]
                if external:
                    names = sorted({self._nodes[h].name for h in external})
                    raise GraphConsistencyError(
                        f"Cannot remove '{node.name}': output '{arg.name}' is still "
                        f"consumed by {', '.join(names)}"
                    )

        touched: List[NodeArg] = []
        for node in doomed.values():
            for arg in node.inputs:
                arg.consumers.remove(node.id)
                touched.append(arg)
            for arg in node.outputs:
                arg.producer = None
                touched.append(arg)
            del self._nodes[node.id]
            del self._node_names[node.name]

        for arg in touched:
            if id(arg) not in preserved:
                self._drop_if_orphaned(arg)

    def replace_input(self, node: Node, index: int, arg: NodeArg):
        """Re-points input `index` of `node` to `arg`."""
        arg = self._resolve_arg(arg)
        old = node.inputs[index]
        if old is arg:
            return
        old.consumers.remove(node.id)
        node.inputs[index] = arg
        arg.consumers.append(node.id)
        self._drop_if_orphaned(old)

    def replace_output(self, node: Node, index: int, arg: NodeArg):
        """Makes `node` the producer of `arg` in place of its current output `index`."""
        arg = self._resolve_arg(arg)
        old = node.outputs[index]
        if old is arg:
            return
        if arg.producer is not None:
            owner = self._nodes[arg.producer].name
            raise GraphConsistencyError(
                f"NodeArg '{arg.name}' is already produced by '{owner}'"
            )
        if self.is_initializer(arg) or self.is_graph_input(arg):
            raise GraphConsistencyError(
                f"NodeArg '{arg.name}' is a graph input or initializer and cannot be produced"
            )
        if old.consumers or self.is_graph_output(old):
            raise GraphConsistencyError(
                f"Output '{old.name}' of '{node.name}' is still in use and cannot be replaced"
            )
        old.producer = None
        node.outputs[index] = arg
        arg.producer = node.id
        self._drop_if_orphaned(old)

    def remove_unused_initializers(self, keep=()) -> List[str]:
        """Drops initializers that no node consumes and that are not graph outputs.

        Names in `keep` are left in place even when unused.
        """
        removed = []
        for name in list(self.initializers):
            arg = self._args[name]
            if name in keep or arg.consumers or self.is_graph_output(arg):
                continue
            self.remove_initializer(name)
            removed.append(name)
        return removed

    def remove_initializer(self, name: str):
        arg = self._args.get(name)
        if name not in self.initializers or arg is None:
            raise GraphConsistencyError(f"'{name}' is not an initializer of '{self.name}'")
        if arg.consumers or self.is_graph_output(arg):
            raise GraphConsistencyError(f"Initializer '{name}' is still in use")
        del self.initializers[name]
        del self._args[name]

    def _drop_if_orphaned(self, arg: NodeArg):
        if arg.producer is not None or arg.consumers:
            return
        if arg.name in self.initializers:
            return
        if self.is_graph_input(arg) or self.is_graph_output(arg):
            return
        if self._args.get(arg.name) is arg:
            del self._args[arg.name]

    # -----------------------
    # Ordering and validation
    # -----------------------

    def topological_order(self) -> List[Node]:
        """
        Stable topological order: among ready nodes the lowest handle goes first.

        Raises:
            GraphConsistencyError: if the graph contains a cycle.
        """
        indegree: Dict[int, int] = {}
        successors: Dict[int, set] = collections.defaultdict(set)
        for handle, node in self._nodes.items():
            preds = {arg.producer for arg in node.inputs if arg.producer is not None}
            indegree[handle] = len(preds)
            for pred in preds:
                successors[pred].add(handle)

        ready = [h for h, d in indegree.items() if d == 0]
        heapq.heapify(ready)
        order = []
        while ready:
            handle = heapq.heappop(ready)
            order.append(self._nodes[handle])
            for succ in successors[handle]:
                indegree[succ] -= 1
                if indegree[succ] == 0:
                    heapq.heappush(ready, succ)

        if len(order) != len(self._nodes):
            stuck = sorted(self._nodes[h].name for h, d in indegree.items() if d > 0)
            raise GraphConsistencyError(f"Graph contains a cycle through: {', '.join(stuck)}")
        return order

    def validate(self) -> bool:
        """
        Checks graph well-formedness.

        Returns:
            True if valid, raises GraphConsistencyError otherwise.
        """
        producers: Dict[int, List[str]] = collections.defaultdict(list)
        for node in self._nodes.values():
            for arg in node.outputs:
                if self._args.get(arg.name) is not arg:
                    raise GraphConsistencyError(
                        f"Node '{node.name}' produces unregistered NodeArg '{arg.name}'"
                    )
                producers[id(arg)].append(node.name)
                if arg.producer != node.id:
                    raise GraphConsistencyError(
                        f"NodeArg '{arg.name}' does not record '{node.name}' as its producer"
                    )

        for arg in self._args.values():
            if len(producers[id(arg)]) > 1:
                raise GraphConsistencyError(
                    f"NodeArg '{arg.name}' has multiple producers: {producers[id(arg)]}"
                )
            if arg.producer is not None and arg.producer not in self._nodes:
                raise GraphConsistencyError(
                    f"NodeArg '{arg.name}' refers to a removed producer"
                )
            for handle, count in collections.Counter(arg.consumers).items():
                consumer = self._nodes.get(handle)
                if consumer is None:
                    raise GraphConsistencyError(
                        f"NodeArg '{arg.name}' refers to a removed consumer"
                    )
                if sum(1 for a in consumer.inputs if a is arg) != count:
                    raise GraphConsistencyError(
                        f"Consumer bookkeeping of '{arg.name}' disagrees with '{consumer.name}'"
                    )

        for node in self._nodes.values():
            for arg in node.inputs:
                if self._args.get(arg.name) is not arg:
                    raise GraphConsistencyError(
                        f"Node '{node.name}' consumes unregistered NodeArg '{arg.name}'"
                    )
                if node.id not in arg.consumers:
                    raise GraphConsistencyError(
                        f"NodeArg '{arg.name}' does not record '{node.name}' as a consumer"
                    )
                if (
                    arg.producer is None
                    and not self.is_initializer(arg)
                    and not self.is_graph_input(arg)
                ):
                    raise GraphConsistencyError(
                        f"Node '{node.name}' has dangling input '{arg.name}'"
                    )

        for arg in self.outputs:
            if (
                arg.producer is None
                and not self.is_initializer(arg)
                and not self.is_graph_input(arg)
            ):
                raise GraphConsistencyError(f"Graph output '{arg.name}' has no producer")

        self.topological_order()
        return True

    # -----------------------
    # Snapshots
    # -----------------------

    def copy(self) -> "Graph":
        return copy.deepcopy(self)

    def restore(self, snapshot: "Graph"):
        """Restores this graph in place from a snapshot taken with copy()."""
        restored = copy.deepcopy(snapshot)
        self.__dict__.clear()
        self.__dict__.update(restored.__dict__)
