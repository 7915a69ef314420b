"""Shared fixtures: a staged decision stump and small finalized models."""

from __future__ import annotations

from collections.abc import Callable

import pytest

from treeir.builder import ModelBuilder
from treeir.model import LeafNode, Model, TestNode, Tree


def _stage_stump(builder: ModelBuilder, *, root_key: int = 10, threshold: float = 0.5) -> int:
    """Append a staged stump ``x0 < threshold ? -1.0 : 1.0`` under keys root_key..root_key + 2.

    Args:
        builder (ModelBuilder): Builder with at least one feature.
        root_key (int): Key of the test node; leaves use the next two keys.
        threshold (float): Threshold of the test node.

    Returns:
        int: Index of the new staged tree.
    """
    tree_index = builder.create_tree()
    left_key, right_key = root_key + 1, root_key + 2
    for key in (root_key, left_key, right_key):
        builder.create_node(tree_index, key)
    builder.set_root_node(tree_index, root_key)
    builder.set_test_node(
        tree_index,
        root_key,
        feature_id=0,
        op="<",
        threshold=threshold,
        default_left=True,
        left_key=left_key,
        right_key=right_key,
    )
    builder.set_leaf_node(tree_index, left_key, -1.0)
    builder.set_leaf_node(tree_index, right_key, 1.0)
    return tree_index


@pytest.fixture
def stage_stump() -> Callable[..., int]:
    """Helper that appends a staged stump to a builder; see `_stage_stump`."""
    return _stage_stump


@pytest.fixture
def stump_builder() -> ModelBuilder:
    """Builder with one feature and one staged stump (keys 10, 11, 12)."""
    builder = ModelBuilder(num_features=1)
    _stage_stump(builder)
    return builder


@pytest.fixture
def stump_tree() -> Tree:
    """Finalized stump ``x0 < 0.5 ? -1.0 : 1.0`` with missing values going left."""
    return Tree(
        nodes=(
            TestNode(feature_id=0, op="<", threshold=0.5, default_left=True, left=1, right=2),
            LeafNode(leaf_value=-1.0, parent=0),
            LeafNode(leaf_value=1.0, parent=0),
        )
    )


@pytest.fixture
def deep_tree() -> Tree:
    """Finalized tree of depth 2 whose right subtree tests feature 1 with ``>=``.

    Layout::

        0: x0 <= 2.0 (missing -> right)
        1: leaf 0.25
        2: x1 >= 3.0 (missing -> left)
        3: leaf -0.5
        4: leaf 0.75
    """
    return Tree(
        nodes=(
            TestNode(feature_id=0, op="<=", threshold=2.0, default_left=False, left=1, right=2),
            LeafNode(leaf_value=0.25, parent=0),
            TestNode(feature_id=1, op=">=", threshold=3.0, default_left=True, left=3, right=4, parent=0),
            LeafNode(leaf_value=-0.5, parent=2),
            LeafNode(leaf_value=0.75, parent=2),
        )
    )


@pytest.fixture
def two_tree_model(stump_tree: Tree, deep_tree: Tree) -> Model:
    """Model over two features holding `stump_tree` then `deep_tree`."""
    return Model(num_features=2, trees=(stump_tree, deep_tree))
