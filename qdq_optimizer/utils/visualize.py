from typing import Set, Optional


def export_to_dot(graph, highlight_nodes: Optional[Set[str]] = None) -> str:
    """
    Exports a Graph to GraphViz DOT format.

    Args:
        graph: The Graph to export.
        highlight_nodes: Optional set of node names to highlight in the diagram.

    Returns:
        A string containing the DOT representation of the graph.
    """
    highlight_nodes = highlight_nodes or set()
    dot = ["digraph G {"]
    dot.append('  node [shape=box, style=filled, fillcolor=white, fontname="Courier"];')
    dot.append('  edge [fontname="Courier"];')

    for arg in graph.inputs:
        dot.append(f'  "{arg.name}" [shape=ellipse, fillcolor="palegreen"];')

    for node in graph.nodes:
        color = "lightblue" if node.name in highlight_nodes else "white"
        label = f"{node.name}\\n({node.qualified_op_type})"
        dot.append(f'  "{node.name}" [label="{label}", fillcolor="{color}"];')

        for arg in node.inputs:
            # Initializers are drawn as dashed edges from a constant box
            is_const = graph.is_initializer(arg)
            producer = graph.producer(arg)
            source = producer.name if producer is not None else arg.name

            style = "dashed" if is_const else "solid"
            color = "gray" if is_const else "black"
            if is_const:
                dot.append(f'  "{arg.name}" [shape=note, fillcolor="lightyellow"];')

            dot.append(
                f'  "{source}" -> "{node.name}" [label="{arg.name}", style="{style}", color="{color}"];'
            )

    for arg in graph.outputs:
        producer = graph.producer(arg)
        if producer is not None:
            dot.append(f'  "out:{arg.name}" [shape=ellipse, fillcolor="lightpink", label="{arg.name}"];')
            dot.append(f'  "{producer.name}" -> "out:{arg.name}";')

    dot.append("}")
    return "\n".join(dot)


def save_dot(graph, path: str, highlight_nodes: Optional[Set[str]] = None):
    """Saves the DOT representation of a graph to a file."""
    dot_content = export_to_dot(graph, highlight_nodes)
    with open(path, "w") as f:
        f.write(dot_content)
