"""Incremental construction of tree ensembles under caller-chosen node keys.

`ModelBuilder` stages any number of trees. Within a staged tree, nodes are
created under integer keys chosen by the caller, in any order, and wired into
test/leaf roles by key. Child keys may be forward references to nodes that do
not exist yet, so staged state is allowed to be inconsistent until commit.

`ModelBuilder.commit_model` validates every staged tree, and only when all of
them are well formed, compacts each one into a dense `Tree` whose positions
are assigned breadth-first from the root (root = 0, left child before right
child). Validation never mutates staged state, so after a failed commit the
caller can inspect the builder, repair the reported trees and commit again.

Examples:
    >>> builder = ModelBuilder(num_features=1)
    >>> builder.create_tree()
    0
    >>> for key in (10, 11, 12):
    ...     builder.create_node(0, key)
    >>> builder.set_root_node(0, 10)
    >>> builder.set_test_node(0, 10, feature_id=0, op="<", threshold=0.5, default_left=True, left_key=11, right_key=12)
    >>> builder.set_leaf_node(0, 11, -1.0)
    >>> builder.set_leaf_node(0, 12, 1.0)
    >>> model = builder.commit_model()
    >>> model.tree(0).leaf_value(1), model.tree(0).leaf_value(2)
    (-1.0, 1.0)
"""

from __future__ import annotations

from collections import deque
from dataclasses import dataclass, field
from typing import Final

from loguru import logger
from pydantic import NonNegativeInt, validate_call

from treeir.exceptions import (
    AlreadyDefinedError,
    DuplicateKeyError,
    InUseError,
    NotFoundError,
    ValidationFailedError,
)
from treeir.logging import COMMIT_LEVEL
from treeir.model import LeafNode, Model, TestNode, Tree
from treeir.operators import Operator

APPEND: Final[int] = -1

# ---------------------------------------------------------------------------
# Staged node records
# ---------------------------------------------------------------------------


@dataclass(frozen=True, slots=True)
class EmptyStagedNode:
    """A staged node that has been created but not assigned a role.

    Attributes:
        key (int): The node's staging key.
    """

    key: int

    @property
    def role(self) -> str:
        """str: Always "empty"."""
        return "empty"


@dataclass(frozen=True, slots=True)
class StagedTestNode:
    """A staged test node whose children are referenced by key.

    Attributes:
        key (int): The node's staging key.
        feature_id (int): Index of the tested feature.
        op (Operator): Comparison operator.
        threshold (float): Test threshold.
        default_left (bool): Whether a missing value takes the left child.
        left_key (int): Key of the child taken when the comparison holds.
        right_key (int): Key of the child taken when the comparison fails.
    """

    key: int
    feature_id: int
    op: Operator
    threshold: float
    default_left: bool
    left_key: int
    right_key: int

    @property
    def role(self) -> str:
        """str: Always "test"."""
        return "test"


@dataclass(frozen=True, slots=True)
class StagedLeafNode:
    """A staged leaf node.

    Attributes:
        key (int): The node's staging key.
        leaf_value (float): Contribution of the leaf.
    """

    key: int
    leaf_value: float

    @property
    def role(self) -> str:
        """str: Always "leaf"."""
        return "leaf"


type StagedNode = EmptyStagedNode | StagedTestNode | StagedLeafNode


@dataclass
class _StagedTree:
    """Key-addressed nodes of one tree under construction plus its root designation."""

    nodes: dict[int, StagedNode] = field(default_factory=dict)
    root_key: int | None = None


# ---------------------------------------------------------------------------
# Builder
# ---------------------------------------------------------------------------


class ModelBuilder:
    """Mutable staging area for building a `Model` tree by tree and node by node.

    The builder is owned by a single construction session and is not safe for
    concurrent use. Models it produces share no storage with it, so it may be
    mutated and recommitted after a successful commit without affecting
    models already issued.

    All mutations validate their arguments and preconditions before touching
    staged state; a failed call leaves the builder exactly as it was.
    """

    @validate_call
    def __init__(self, num_features: NonNegativeInt) -> None:
        """Initialize an empty builder.

        Args:
            num_features (NonNegativeInt): Number of input features the model
                is built against. Test nodes must use feature ids below it.
        """
        self._num_features = num_features
        self._trees: list[_StagedTree] = []

    def __repr__(self) -> str:
        """Return repr(self).

        Returns:
            str: Feature count and staged node count per tree.
        """
        sizes = ", ".join(str(len(tree.nodes)) for tree in self._trees)
        return f"ModelBuilder(num_features={self._num_features}, tree_sizes=[{sizes}])"

    @classmethod
    def from_model(cls, model: Model) -> ModelBuilder:
        """Create a builder whose staged trees reproduce a finalized model.

        Node positions become staging keys and position 0 is designated as
        each tree's root, so committing the returned builder yields a model
        equal to `model`.

        Args:
            model (Model): The finalized model to stage.

        Returns:
            ModelBuilder: A builder holding one staged tree per model tree.
        """
        builder = cls(model.num_features)
        for tree in model.trees:
            tree_index = builder.create_tree()
            for position in range(tree.num_nodes):
                builder.create_node(tree_index, position)
            for position, node in enumerate(tree.nodes):
                if isinstance(node, TestNode):
                    builder.set_test_node(
                        tree_index,
                        position,
                        feature_id=node.feature_id,
                        op=node.op,
                        threshold=node.threshold,
                        default_left=node.default_left,
                        left_key=node.left,
                        right_key=node.right,
                    )
                else:
                    builder.set_leaf_node(tree_index, position, node.leaf_value)
            builder.set_root_node(tree_index, 0)
        logger.info("Builder staged from model", num_trees=model.num_trees)
        return builder

    # ------------------------------------------------------------------
    # Inspection
    # ------------------------------------------------------------------

    @property
    def num_features(self) -> int:
        """int: Number of input features the model is built against."""
        return self._num_features

    @property
    def num_trees(self) -> int:
        """int: Number of staged trees."""
        return len(self._trees)

    def node_keys(self, tree_index: int) -> tuple[int, ...]:
        """Return the keys of a staged tree's nodes in creation order.

        Raises:
            NotFoundError: If the tree does not exist.
        """
        return tuple(self._get_tree(tree_index).nodes)

    def get_node(self, tree_index: int, key: int) -> StagedNode:
        """Return the staged record for a node.

        Records are immutable, so the returned value cannot be used to modify
        staged state.

        Args:
            tree_index (int): Index of the staged tree.
            key (int): The node's staging key.

        Returns:
            StagedNode: The node's current record.

        Raises:
            NotFoundError: If the tree or node does not exist.
        """
        return self._get_node(self._get_tree(tree_index), tree_index, key)

    def root_key(self, tree_index: int) -> int | None:
        """Return the key designated as a staged tree's root, if any.

        Raises:
            NotFoundError: If the tree does not exist.
        """
        return self._get_tree(tree_index).root_key

    def validate(self) -> dict[int, list[str]]:
        """Check every staged tree without committing.

        Returns:
            dict[int, list[str]]: Structural problems per failing tree index;
                empty when the builder would commit successfully.
        """
        problems: dict[int, list[str]] = {}
        for tree_index, staged_tree in enumerate(self._trees):
            tree_problems = _validate_staged_tree(staged_tree, self._num_features)
            if tree_problems:
                problems[tree_index] = tree_problems
        return problems

    # ------------------------------------------------------------------
    # Tree mutations
    # ------------------------------------------------------------------

    @validate_call
    def create_tree(self, index: int = APPEND) -> int:
        """Insert a new empty staged tree.

        Args:
            index (int): Position at which to insert the tree, shifting later
                trees back. Use -1 (the default) to append.

        Returns:
            int: Index of the new tree.

        Raises:
            NotFoundError: If `index` is neither -1 nor in `[0, num_trees]`.
        """
        if index == APPEND:
            index = len(self._trees)
        elif not 0 <= index <= len(self._trees):
            logger.warning("Tree creation failed", tree=index, num_trees=len(self._trees))
            raise NotFoundError(tree_index=index)

        self._trees.insert(index, _StagedTree())
        logger.debug("Tree created", tree=index)
        return index

    @validate_call
    def delete_tree(self, tree_index: int) -> None:
        """Remove a staged tree and all of its nodes.

        Later trees shift forward by one index.

        Args:
            tree_index (int): Index of the tree to remove.

        Raises:
            NotFoundError: If the tree does not exist.
        """
        staged_tree = self._get_tree(tree_index)
        del self._trees[tree_index]
        logger.debug("Tree deleted", tree=tree_index, num_nodes=len(staged_tree.nodes))

    # ------------------------------------------------------------------
    # Node mutations
    # ------------------------------------------------------------------

    @validate_call
    def create_node(self, tree_index: int, key: int) -> None:
        """Create an empty node under `key`.

        Args:
            tree_index (int): Index of the staged tree.
            key (int): Staging key for the new node; unique within the tree.

        Raises:
            NotFoundError: If the tree does not exist.
            DuplicateKeyError: If `key` is already in use in the tree.
        """
        staged_tree = self._get_tree(tree_index)
        if key in staged_tree.nodes:
            logger.warning("Node creation failed: duplicate key", tree=tree_index, key=key)
            raise DuplicateKeyError(tree_index=tree_index, key=key)

        staged_tree.nodes[key] = EmptyStagedNode(key)
        logger.debug("Node created", tree=tree_index, key=key)

    @validate_call
    def delete_node(self, tree_index: int, key: int) -> None:
        """Remove a node that no other node references as a child.

        If the node is the tree's designated root, the designation is cleared.

        Args:
            tree_index (int): Index of the staged tree.
            key (int): Key of the node to remove.

        Raises:
            NotFoundError: If the tree or node does not exist.
            InUseError: If another test node references `key` as a child.
        """
        staged_tree = self._get_tree(tree_index)
        self._get_node(staged_tree, tree_index, key)

        referrers = [
            node.key
            for node in staged_tree.nodes.values()
            if isinstance(node, StagedTestNode) and node.key != key and key in (node.left_key, node.right_key)
        ]
        if referrers:
            logger.warning("Node deletion failed: node in use", tree=tree_index, key=key, referrers=referrers)
            raise InUseError(tree_index=tree_index, key=key, referrers=referrers)

        del staged_tree.nodes[key]
        if staged_tree.root_key == key:
            staged_tree.root_key = None
            logger.debug("Root designation cleared", tree=tree_index, key=key)
        logger.debug("Node deleted", tree=tree_index, key=key)

    @validate_call
    def set_root_node(self, tree_index: int, key: int) -> None:
        """Designate `key` as the tree's root, replacing any prior designation.

        Args:
            tree_index (int): Index of the staged tree.
            key (int): Key of the root node.

        Raises:
            NotFoundError: If the tree or node does not exist.
        """
        staged_tree = self._get_tree(tree_index)
        self._get_node(staged_tree, tree_index, key)

        previous = staged_tree.root_key
        staged_tree.root_key = key
        logger.debug("Root node set", tree=tree_index, key=key, previous=previous)

    @validate_call
    def set_test_node(
        self,
        tree_index: int,
        key: int,
        *,
        feature_id: NonNegativeInt,
        op: Operator,
        threshold: float,
        default_left: bool,
        left_key: int,
        right_key: int,
    ) -> None:
        """Turn an empty node into a test node.

        The test reads ``feature[feature_id] <op> threshold``; when it holds
        the `left_key` child is taken, otherwise the `right_key` child. A
        missing feature value takes the left child when `default_left` is
        True. Child keys may refer to nodes that have not been created yet;
        they are resolved at commit.

        Args:
            tree_index (int): Index of the staged tree.
            key (int): Key of the node to define; it must be empty.
            feature_id (NonNegativeInt): Index of the tested feature.
            op (Operator): Comparison operator, or its symbol such as "<=".
            threshold (float): Test threshold.
            default_left (bool): Whether a missing value takes the left child.
            left_key (int): Key of the child taken when the comparison holds.
            right_key (int): Key of the child taken when the comparison fails.

        Raises:
            NotFoundError: If the tree or node does not exist.
            AlreadyDefinedError: If the node already has a role.
        """
        staged_tree = self._get_tree(tree_index)
        self._require_empty(staged_tree, tree_index, key)

        staged_tree.nodes[key] = StagedTestNode(
            key=key,
            feature_id=feature_id,
            op=op,
            threshold=threshold,
            default_left=default_left,
            left_key=left_key,
            right_key=right_key,
        )
        logger.debug(
            "Test node set",
            tree=tree_index,
            key=key,
            feature_id=feature_id,
            op=str(op),
            threshold=threshold,
            left_key=left_key,
            right_key=right_key,
        )

    @validate_call
    def set_leaf_node(self, tree_index: int, key: int, leaf_value: float) -> None:
        """Turn an empty node into a leaf node.

        Args:
            tree_index (int): Index of the staged tree.
            key (int): Key of the node to define; it must be empty.
            leaf_value (float): Contribution of the leaf.

        Raises:
            NotFoundError: If the tree or node does not exist.
            AlreadyDefinedError: If the node already has a role.
        """
        staged_tree = self._get_tree(tree_index)
        self._require_empty(staged_tree, tree_index, key)

        staged_tree.nodes[key] = StagedLeafNode(key=key, leaf_value=leaf_value)
        logger.debug("Leaf node set", tree=tree_index, key=key, leaf_value=leaf_value)

    # ------------------------------------------------------------------
    # Commit
    # ------------------------------------------------------------------

    def commit_model(self) -> Model:
        """Validate every staged tree and compact them into a new `Model`.

        Each tree is renumbered breadth-first from its root (root = 0, left
        child before right child), child keys are rewritten to positions and
        parent links are derived. Staged state is never modified.

        Returns:
            Model: A new immutable model, one tree per staged tree.

        Raises:
            ValidationFailedError: If any staged tree is not well formed. No
                model is produced, and the problems of every failing tree are
                reported together.
        """
        problems = self.validate()
        if problems:
            logger.warning(
                "Model commit failed",
                num_trees=len(self._trees),
                failing_trees=sorted(problems),
                problem_count=sum(len(tree_problems) for tree_problems in problems.values()),
            )
            raise ValidationFailedError(problems)

        trees: list[Tree] = []
        for tree_index, staged_tree in enumerate(self._trees):
            if staged_tree.root_key is None:
                raise ValidationFailedError({tree_index: ["no root designated"]})
            trees.append(_compact_staged_tree(staged_tree.nodes, staged_tree.root_key))

        model = Model(num_features=self._num_features, trees=tuple(trees))
        logger.log(
            COMMIT_LEVEL,
            "Model committed",
            num_trees=model.num_trees,
            num_nodes=sum(tree.num_nodes for tree in model.trees),
        )
        return model

    # ------------------------------------------------------------------
    # Private helpers
    # ------------------------------------------------------------------

    def _get_tree(self, tree_index: int) -> _StagedTree:
        if not 0 <= tree_index < len(self._trees):
            logger.warning("Tree not found", tree=tree_index, num_trees=len(self._trees))
            raise NotFoundError(tree_index=tree_index)
        return self._trees[tree_index]

    def _get_node(self, staged_tree: _StagedTree, tree_index: int, key: int) -> StagedNode:
        node = staged_tree.nodes.get(key)
        if node is None:
            logger.warning("Node not found", tree=tree_index, key=key)
            raise NotFoundError(tree_index=tree_index, key=key)
        return node

    def _require_empty(self, staged_tree: _StagedTree, tree_index: int, key: int) -> None:
        node = self._get_node(staged_tree, tree_index, key)
        if not isinstance(node, EmptyStagedNode):
            logger.warning("Node already defined", tree=tree_index, key=key, role=node.role)
            raise AlreadyDefinedError(tree_index=tree_index, key=key, role=node.role)


# ---------------------------------------------------------------------------
# Validation and compaction
# ---------------------------------------------------------------------------


def _validate_staged_tree(staged_tree: _StagedTree, num_features: int) -> list[str]:
    """Collect the structural problems of one staged tree.

    Traverses breadth-first from the root along child keys. A node reached
    twice means a cycle or a shared child; nodes never reached are orphans.

    Args:
        staged_tree (_StagedTree): The staged tree to check.
        num_features (int): Exclusive upper bound on test feature ids.

    Returns:
        list[str]: Problem descriptions; empty when the tree is well formed.
    """
    nodes = staged_tree.nodes
    if staged_tree.root_key is None:
        return ["no root designated"]
    if staged_tree.root_key not in nodes:
        return [f"root key {staged_tree.root_key} does not exist"]

    problems: list[str] = []
    visited: set[int] = set()
    queue = deque([staged_tree.root_key])
    while queue:
        key = queue.popleft()
        if key in visited:
            problems.append(f"node {key} is reached more than once (cycle or shared child)")
            continue
        visited.add(key)

        match nodes[key]:
            case EmptyStagedNode():
                problems.append(f"node {key} is empty (no role assigned)")
            case StagedTestNode(feature_id=feature_id, left_key=left_key, right_key=right_key):
                if feature_id >= num_features:
                    problems.append(f"node {key} tests feature {feature_id}, but the model has {num_features} features")
                for child_key in (left_key, right_key):
                    if child_key == key:
                        problems.append(f"node {key} references itself as a child")
                    elif child_key not in nodes:
                        problems.append(f"node {key} has dangling child reference {child_key}")
                    else:
                        queue.append(child_key)
            case StagedLeafNode():
                pass

    orphans = sorted(nodes.keys() - visited)
    if orphans:
        problems.append(f"nodes {orphans} are not reachable from root {staged_tree.root_key}")
    return problems


def _compact_staged_tree(nodes: dict[int, StagedNode], root_key: int) -> Tree:
    """Renumber a validated staged tree into a dense, position-addressed `Tree`.

    Args:
        nodes (dict[int, StagedNode]): Nodes of a staged tree that passed validation.
        root_key (int): Key of the tree's designated root.

    Returns:
        Tree: The finalized tree, root at position 0, positions assigned in
            breadth-first order with the left child before the right child.
    """
    order = [root_key]
    positions = {root_key: 0}
    parents: dict[int, int | None] = {root_key: None}
    for key in order:  # order grows while iterating
        node = nodes[key]
        if isinstance(node, StagedTestNode):
            for child_key in (node.left_key, node.right_key):
                positions[child_key] = len(order)
                parents[child_key] = positions[key]
                order.append(child_key)

    finalized: list[LeafNode | TestNode] = []
    for key in order:
        node = nodes[key]
        if isinstance(node, StagedTestNode):
            finalized.append(
                TestNode(
                    feature_id=node.feature_id,
                    op=node.op,
                    threshold=node.threshold,
                    default_left=node.default_left,
                    left=positions[node.left_key],
                    right=positions[node.right_key],
                    parent=parents[key],
                )
            )
        elif isinstance(node, StagedLeafNode):
            finalized.append(LeafNode(leaf_value=node.leaf_value, parent=parents[key]))
    return Tree(nodes=tuple(finalized))
