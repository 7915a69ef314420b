"""Tabular views of finalized trees as Polars DataFrames."""

from __future__ import annotations

from collections.abc import Sequence

import polars as pl

from treeir.model import Model, TestNode, Tree

NODE_SCHEMA: dict[str, pl.DataType] = {
    "tree": pl.Int64(),
    "position": pl.Int64(),
    "kind": pl.String(),
    "parent": pl.Int64(),
    "left": pl.Int64(),
    "right": pl.Int64(),
    "feature_id": pl.Int64(),
    "op": pl.String(),
    "threshold": pl.Float64(),
    "default_left": pl.Boolean(),
    "leaf_value": pl.Float64(),
}


def tree_to_frame(tree: Tree, tree_index: int = 0) -> pl.DataFrame:
    """Build one row per node of a tree, ordered by position.

    Columns that do not apply to a node's kind are null: test nodes have no
    `leaf_value`, leaves have no children, feature, operator, threshold or
    default direction, and the root has no parent.

    Args:
        tree (Tree): The tree to tabulate.
        tree_index (int): Value of the `tree` column. Defaults to 0.

    Returns:
        pl.DataFrame: Node table with the columns of `NODE_SCHEMA`.

    Examples:
        >>> from treeir.model import LeafNode
        >>> tree_to_frame(Tree(nodes=(LeafNode(leaf_value=2.0),))).select("kind", "leaf_value").row(0)
        ('leaf', 2.0)
    """
    rows = []
    for position, node in enumerate(tree.nodes):
        row = dict.fromkeys(NODE_SCHEMA)
        row.update(tree=tree_index, position=position, kind=node.kind, parent=node.parent)
        if isinstance(node, TestNode):
            row.update(
                left=node.left,
                right=node.right,
                feature_id=node.feature_id,
                op=str(node.op),
                threshold=node.threshold,
                default_left=node.default_left,
            )
        else:
            row["leaf_value"] = node.leaf_value
        rows.append(row)
    return pl.DataFrame(rows, schema=NODE_SCHEMA)


def model_to_frame(model: Model) -> pl.DataFrame:
    """Stack the node tables of every tree in ensemble order.

    Args:
        model (Model): The model to tabulate.

    Returns:
        pl.DataFrame: Node table with the columns of `NODE_SCHEMA`; empty
            (but with the full schema) when the model has no trees.
    """
    frames = [tree_to_frame(tree, tree_index) for tree_index, tree in enumerate(model.trees)]
    if not frames:
        return pl.DataFrame(schema=NODE_SCHEMA)
    return pl.concat(frames, how="vertical")


def to_markdown_table(
    df: pl.DataFrame,
    columns: Sequence[str] | None = None,
    num_rows: int = 10,
) -> str:
    """Convert a Polars DataFrame to a markdown table string.

    This function temporarily modifies global ``pl.Config`` state to render
    the table, so it is not thread-safe.

    Args:
        df (pl.DataFrame): The DataFrame to convert.
        columns (Sequence[str] | None): Optional column names to include. If
            None, all columns are included.
        num_rows (int): Maximum number of rows to display. Defaults to 10.

    Returns:
        str: Markdown-formatted table string.

    Raises:
        ValueError: If `num_rows` is less than 1, or `columns` is empty,
            contains duplicates, or names a column not in `df`.

    Examples:
        >>> df = pl.DataFrame({"kind": ["test", "leaf"]})
        >>> print(to_markdown_table(df, num_rows=2))
        | kind |
        |------|
        | test |
        | leaf |
    """
    if num_rows < 1:
        raise ValueError(f"num_rows must be at least 1, got {num_rows}")
    if columns is not None:
        _validate_columns(columns, df.columns)
        df = df.select(columns)

    with pl.Config(
        tbl_formatting="MARKDOWN",
        tbl_hide_column_data_types=True,
        tbl_hide_column_names=False,
        tbl_hide_dataframe_shape=True,
        tbl_rows=num_rows,
        tbl_cols=df.width,
    ):
        return str(df)


def _validate_columns(columns: Sequence[str], df_columns: Sequence[str]) -> None:
    if len(columns) == 0:
        raise ValueError("columns list must not be empty; pass None to include all columns")
    if len(columns) != len(set(columns)):
        raise ValueError(f"columns contain duplicates: {list(columns)}")
    missing = sorted(set(columns) - set(df_columns))
    if missing:
        raise ValueError(f"columns not found: {missing}; available: {list(df_columns)}")
