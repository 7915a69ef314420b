"""Canonical, immutable representation of a decision-tree ensemble.

A `Model` is an ordered tuple of `Tree` objects. Each tree is a dense tuple of
nodes addressed by position, with the root at position 0. Nodes are either a
`LeafNode` carrying a contribution value or a `TestNode` comparing one feature
against a threshold.

Branching convention:
    For a test node and a feature value `v`, a missing value (None or NaN)
    takes the default child (`left` when `default_left`, else `right`).
    Otherwise `v <op> threshold` holding takes the `left` child and failing
    takes the `right` child. `ModelBuilder.set_test_node` and every loader
    encode children with this convention.

All models are frozen pydantic models whose structure is validated on
construction, so a `Tree` that exists is always a well-formed binary tree.
"""

from __future__ import annotations

import math
from collections import deque
from collections.abc import Iterator
from typing import Annotated, ClassVar, Literal, NamedTuple

import numpy as np
from pydantic import BaseModel, ConfigDict, Field, model_validator

from treeir.exceptions import OutOfRangeError
from treeir.operators import Operator

# ---------------------------------------------------------------------------
# Nodes
# ---------------------------------------------------------------------------


class LeafNode(BaseModel):
    """Terminal node carrying the ensemble's contribution for this path.

    Attributes:
        kind (Literal["leaf"]): Discriminator field; always `"leaf"`.
        leaf_value (float): Contribution of this leaf.
        parent (int | None): Position of the parent node, None for the root.

    Examples:
        >>> LeafNode(leaf_value=1.5, parent=0).is_root
        False
    """

    model_config = ConfigDict(frozen=True, ser_json_inf_nan="constants")

    kind: Literal["leaf"] = Field(default="leaf", description='Discriminator field. Always "leaf".')
    leaf_value: float = Field(description="Contribution of this leaf.")
    parent: int | None = Field(default=None, ge=0, description="Position of the parent node; None for the root.")

    @property
    def is_leaf(self) -> bool:
        """bool: Always True."""
        return True

    @property
    def is_root(self) -> bool:
        """bool: Whether this node has no parent."""
        return self.parent is None


class TestNode(BaseModel):
    """Internal node testing ``feature[feature_id] <op> threshold``.

    Attributes:
        kind (Literal["test"]): Discriminator field; always `"test"`.
        feature_id (int): Index of the tested feature.
        op (Operator): Comparison operator.
        threshold (float): Threshold the feature value is compared against.
        default_left (bool): Whether a missing feature value takes the left child.
        left (int): Position of the child taken when the comparison holds.
        right (int): Position of the child taken when the comparison fails.
        parent (int | None): Position of the parent node, None for the root.
    """

    __test__: ClassVar[bool] = False  # not a pytest test class

    model_config = ConfigDict(frozen=True, ser_json_inf_nan="constants")

    kind: Literal["test"] = Field(default="test", description='Discriminator field. Always "test".')
    feature_id: int = Field(ge=0, description="Index of the tested feature.")
    op: Operator = Field(description="Comparison operator applied as feature <op> threshold.")
    threshold: float = Field(description="Threshold the feature value is compared against.")
    default_left: bool = Field(description="Whether a missing feature value takes the left child.")
    left: int = Field(ge=0, description="Position of the child taken when the comparison holds.")
    right: int = Field(ge=0, description="Position of the child taken when the comparison fails.")
    parent: int | None = Field(default=None, ge=0, description="Position of the parent node; None for the root.")

    @property
    def is_leaf(self) -> bool:
        """bool: Always False."""
        return False

    @property
    def is_root(self) -> bool:
        """bool: Whether this node has no parent."""
        return self.parent is None

    @property
    def default_child(self) -> int:
        """int: Position of the child taken when the feature value is missing."""
        return self.left if self.default_left else self.right


Node = Annotated[LeafNode | TestNode, Field(discriminator="kind")]


class TreeArrays(NamedTuple):
    """Parallel numpy arrays describing one tree, indexed by node position.

    Leaf slots hold -1 in `children_left`, `children_right` and `feature`,
    NaN in `threshold` and False in `default_left`. Test slots hold NaN in
    `value`. The root's `parent` is -1.
    """

    children_left: np.ndarray
    children_right: np.ndarray
    parent: np.ndarray
    feature: np.ndarray
    threshold: np.ndarray
    default_left: np.ndarray
    value: np.ndarray


# ---------------------------------------------------------------------------
# Tree
# ---------------------------------------------------------------------------


class Tree(BaseModel):
    """A finalized binary tree stored as a dense tuple of nodes.

    Attributes:
        nodes (tuple[Node, ...]): Nodes addressed by position; position 0 is the root.

    Examples:
        >>> tree = Tree(
        ...     nodes=(
        ...         TestNode(feature_id=0, op="<", threshold=0.5, default_left=True, left=1, right=2),
        ...         LeafNode(leaf_value=-1.0, parent=0),
        ...         LeafNode(leaf_value=1.0, parent=0),
        ...     )
        ... )
        >>> tree.next_position(0, 0.2)
        1
        >>> tree.next_position(0, None)
        1
    """

    model_config = ConfigDict(frozen=True)

    nodes: tuple[Node, ...] = Field(min_length=1, description="Nodes addressed by position; position 0 is the root.")

    @model_validator(mode="after")
    def _validate_structure(self) -> Tree:
        """Validate that the nodes form a strict binary tree rooted at position 0.

        Returns:
            Tree: The validated instance.

        Raises:
            ValueError: If the root has a parent, a child position is out of
                range, parent and child links disagree, or some node is not
                reachable from the root.
        """
        size = len(self.nodes)
        if self.nodes[0].parent is not None:
            raise ValueError(f"root node at position 0 must not have a parent, got parent={self.nodes[0].parent}")

        for position, node in enumerate(self.nodes):
            if position > 0 and node.parent is None:
                raise ValueError(f"node {position} has no parent; only position 0 may be the root")
            if node.parent is not None and node.parent >= size:
                raise ValueError(f"node {position} has parent {node.parent} outside [0, {size})")
            if isinstance(node, TestNode):
                _validate_children(self.nodes, position, node)
            if node.parent is not None:
                parent_node = self.nodes[node.parent]
                if not isinstance(parent_node, TestNode) or position not in (parent_node.left, parent_node.right):
                    raise ValueError(f"node {position} names parent {node.parent}, which does not reference it")

        visited = sum(1 for _ in _breadth_first(self.nodes))
        if visited != size:
            raise ValueError(f"only {visited} of {size} nodes are reachable from the root")
        return self

    def __len__(self) -> int:
        """Return the number of nodes.

        Returns:
            int: Number of nodes in the tree.
        """
        return len(self.nodes)

    @property
    def num_nodes(self) -> int:
        """int: Number of nodes in the tree."""
        return len(self.nodes)

    @property
    def num_leaves(self) -> int:
        """int: Number of leaf nodes in the tree."""
        return sum(1 for node in self.nodes if node.is_leaf)

    @property
    def depth(self) -> int:
        """int: Number of edges on the longest root-to-leaf path."""
        depths = [0] * len(self.nodes)
        for position, node in _breadth_first(self.nodes):
            if node.parent is not None:
                depths[position] = depths[node.parent] + 1
        return max(depths)

    def node(self, position: int) -> LeafNode | TestNode:
        """Return the node at a position.

        Args:
            position (int): Node position.

        Returns:
            LeafNode | TestNode: The node.

        Raises:
            OutOfRangeError: If `position` is not in `[0, num_nodes)`.
        """
        self._check_position(position)
        return self.nodes[position]

    def is_leaf(self, position: int) -> bool:
        """Return whether the node at `position` is a leaf.

        Raises:
            OutOfRangeError: If `position` is not in `[0, num_nodes)`.
        """
        return self.node(position).is_leaf

    def is_root(self, position: int) -> bool:
        """Return whether the node at `position` is the root.

        Raises:
            OutOfRangeError: If `position` is not in `[0, num_nodes)`.
        """
        return self.node(position).is_root

    def parent(self, position: int) -> int | None:
        """Return the parent position of a node, or None for the root.

        Raises:
            OutOfRangeError: If `position` is not in `[0, num_nodes)`.
        """
        return self.node(position).parent

    def left_child(self, position: int) -> int:
        """Return the left child position of a test node.

        Raises:
            OutOfRangeError: If `position` is not in `[0, num_nodes)`.
            ValueError: If the node is a leaf.
        """
        return self._test_node(position).left

    def right_child(self, position: int) -> int:
        """Return the right child position of a test node.

        Raises:
            OutOfRangeError: If `position` is not in `[0, num_nodes)`.
            ValueError: If the node is a leaf.
        """
        return self._test_node(position).right

    def leaf_value(self, position: int) -> float:
        """Return the value of a leaf node.

        Raises:
            OutOfRangeError: If `position` is not in `[0, num_nodes)`.
            ValueError: If the node is a test node.
        """
        node = self.node(position)
        if not isinstance(node, LeafNode):
            raise ValueError(f"node {position} is a test node and has no leaf value")
        return node.leaf_value

    def iter_breadth_first(self) -> Iterator[tuple[int, LeafNode | TestNode]]:
        """Yield `(position, node)` pairs breadth-first from the root, left before right.

        Yields:
            tuple[int, LeafNode | TestNode]: Position and node.
        """
        yield from _breadth_first(self.nodes)

    def next_position(self, position: int, value: float | None) -> int:
        """Take one branching step from a test node.

        Args:
            position (int): Position of a test node.
            value (float | None): The tested feature's value; None or NaN
                means missing.

        Returns:
            int: Position of the child to visit next.

        Raises:
            OutOfRangeError: If `position` is not in `[0, num_nodes)`.
            ValueError: If the node is a leaf.
        """
        node = self._test_node(position)
        if value is None or math.isnan(value):
            return node.default_child
        return node.left if node.op.apply(value, node.threshold) else node.right

    def to_arrays(self) -> TreeArrays:
        """Project the tree into parallel numpy arrays indexed by position.

        Returns:
            TreeArrays: Child, parent, feature, threshold, default direction
                and leaf value arrays.
        """
        size = len(self.nodes)
        arrays = TreeArrays(
            children_left=np.full(size, -1, dtype=np.int64),
            children_right=np.full(size, -1, dtype=np.int64),
            parent=np.full(size, -1, dtype=np.int64),
            feature=np.full(size, -1, dtype=np.int64),
            threshold=np.full(size, np.nan, dtype=np.float64),
            default_left=np.zeros(size, dtype=np.bool_),
            value=np.full(size, np.nan, dtype=np.float64),
        )
        for position, node in enumerate(self.nodes):
            if node.parent is not None:
                arrays.parent[position] = node.parent
            if isinstance(node, TestNode):
                arrays.children_left[position] = node.left
                arrays.children_right[position] = node.right
                arrays.feature[position] = node.feature_id
                arrays.threshold[position] = node.threshold
                arrays.default_left[position] = node.default_left
            else:
                arrays.value[position] = node.leaf_value
        return arrays

    def _check_position(self, position: int) -> None:
        if not 0 <= position < len(self.nodes):
            raise OutOfRangeError(position=position, size=len(self.nodes))

    def _test_node(self, position: int) -> TestNode:
        node = self.node(position)
        if not isinstance(node, TestNode):
            raise ValueError(f"node {position} is a leaf and has no children")
        return node


# ---------------------------------------------------------------------------
# Model
# ---------------------------------------------------------------------------


class Model(BaseModel):
    """An ordered ensemble of finalized trees.

    Prediction semantics are additive over trees; structural validity does
    not depend on tree order.

    Attributes:
        num_features (int): Number of input features the model was built against.
        trees (tuple[Tree, ...]): The trees, in ensemble order.

    Examples:
        >>> model = Model(num_features=2, trees=(Tree(nodes=(LeafNode(leaf_value=0.5),)),))
        >>> model.num_trees
        1
        >>> model.tree(0).leaf_value(0)
        0.5
    """

    model_config = ConfigDict(frozen=True)

    num_features: int = Field(ge=0, description="Number of input features the model was built against.")
    trees: tuple[Tree, ...] = Field(default=(), description="The trees, in ensemble order.")

    @model_validator(mode="after")
    def _validate_feature_ids(self) -> Model:
        """Validate that every test node references an existing feature.

        Returns:
            Model: The validated instance.

        Raises:
            ValueError: If a test node's `feature_id` is not below `num_features`.
        """
        for tree_index, tree in enumerate(self.trees):
            for position, node in enumerate(tree.nodes):
                if isinstance(node, TestNode) and node.feature_id >= self.num_features:
                    raise ValueError(
                        f"tree {tree_index} node {position} tests feature {node.feature_id}, "
                        f"but the model has {self.num_features} features"
                    )
        return self

    def __len__(self) -> int:
        """Return the number of trees.

        Returns:
            int: Number of trees in the ensemble.
        """
        return len(self.trees)

    @property
    def num_trees(self) -> int:
        """int: Number of trees in the ensemble."""
        return len(self.trees)

    def tree(self, index: int) -> Tree:
        """Return the tree at an ensemble position.

        Args:
            index (int): Tree position.

        Returns:
            Tree: The tree.

        Raises:
            OutOfRangeError: If `index` is not in `[0, num_trees)`.
        """
        if not 0 <= index < len(self.trees):
            raise OutOfRangeError(position=index, size=len(self.trees), kind="tree")
        return self.trees[index]


# ---------------------------------------------------------------------------
# Private helpers
# ---------------------------------------------------------------------------


def _validate_children(nodes: tuple[LeafNode | TestNode, ...], position: int, node: TestNode) -> None:
    """Validate the child links of one test node.

    Args:
        nodes (tuple[LeafNode | TestNode, ...]): All nodes of the tree.
        position (int): Position of the test node.
        node (TestNode): The test node.

    Raises:
        ValueError: If a child is out of range, is the root, is the node
            itself, both children coincide, or a child does not name this
            node as its parent.
    """
    size = len(nodes)
    if node.left == node.right:
        raise ValueError(f"node {position} uses position {node.left} as both children")
    for child in (node.left, node.right):
        if child >= size:
            raise ValueError(f"node {position} has child {child} outside [0, {size})")
        if child in (0, position):
            raise ValueError(f"node {position} has invalid child {child}")
        if nodes[child].parent != position:
            raise ValueError(f"node {position} has child {child}, whose parent is {nodes[child].parent}")


def _breadth_first(nodes: tuple[LeafNode | TestNode, ...]) -> Iterator[tuple[int, LeafNode | TestNode]]:
    """Yield reachable `(position, node)` pairs breadth-first from position 0.

    Each position is yielded at most once even when links are inconsistent.

    Args:
        nodes (tuple[LeafNode | TestNode, ...]): All nodes of the tree.

    Yields:
        tuple[int, LeafNode | TestNode]: Position and node.
    """
    seen = {0}
    queue = deque([0])
    while queue:
        position = queue.popleft()
        node = nodes[position]
        yield position, node
        if isinstance(node, TestNode):
            for child in (node.left, node.right):
                if child < len(nodes) and child not in seen:
                    seen.add(child)
                    queue.append(child)
