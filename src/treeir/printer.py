"""Human-readable dumps of finalized models.

The text dump walks each tree breadth-first from the root and prints one
line per node::

    Tree #0
      0: split_index=0, threshold=0.5, op=<, cleft=1, cright=2, cdefault=1
      1: leaf_value=-1, parent=0
      2: leaf_value=1, parent=0
    Tree #0 has 2 leaves total

Numbers use the ``g`` format. A root leaf prints ``parent=-1``.
"""

from __future__ import annotations

from treeir.frames import model_to_frame, to_markdown_table
from treeir.model import Model, TestNode, Tree


def format_tree(tree: Tree, index: int = 0) -> str:
    """Render one tree as the breadth-first text dump.

    Args:
        tree (Tree): The tree to render.
        index (int): Ensemble position printed in the header. Defaults to 0.

    Returns:
        str: The dump, without a trailing newline.
    """
    lines = [f"Tree #{index}"]
    for position, node in tree.iter_breadth_first():
        if isinstance(node, TestNode):
            line = (
                f"  {position}: split_index={node.feature_id}, threshold={node.threshold:g}, op={node.op}, "
                f"cleft={node.left}, cright={node.right}, cdefault={node.default_child}"
            )
            if node.parent is not None:
                line += f", parent={node.parent}"
        else:
            parent = -1 if node.parent is None else node.parent
            line = f"  {position}: leaf_value={node.leaf_value:g}, parent={parent}"
        lines.append(line)
    lines.append(f"Tree #{index} has {tree.num_leaves} leaves total")
    return "\n".join(lines)


def format_model(model: Model) -> str:
    """Render every tree of a model, separated by blank lines.

    Args:
        model (Model): The model to render.

    Returns:
        str: The dump; empty for a model without trees.
    """
    return "\n\n".join(format_tree(tree, index) for index, tree in enumerate(model.trees))


def format_model_table(model: Model, num_rows: int = 100) -> str:
    """Render the model's node table as markdown.

    Args:
        model (Model): The model to render.
        num_rows (int): Maximum number of rows to display. Defaults to 100.

    Returns:
        str: Markdown table with one row per node.
    """
    return to_markdown_table(model_to_frame(model), num_rows=num_rows)
