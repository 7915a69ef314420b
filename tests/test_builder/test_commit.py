"""Tests for ModelBuilder.commit_model: validation, compaction and independence."""

from __future__ import annotations

from collections.abc import Callable

import pytest
from pytest_check import check

from treeir.builder import ModelBuilder, StagedLeafNode, StagedNode, StagedTestNode, _compact_staged_tree
from treeir.exceptions import ValidationFailedError
from treeir.model import LeafNode, Model, TestNode, Tree
from treeir.operators import Operator


class TestSuccessfulCommit:
    """Tests for committing well-formed staged trees."""

    def test_stump_is_compacted_breadth_first(self, stump_builder: ModelBuilder) -> None:
        """Keys 10, 11, 12 become positions 0, 1, 2 with the left child first."""
        # Act
        model = stump_builder.commit_model()

        # Assert
        tree = model.tree(0)
        with check:
            assert model.num_trees == 1
        with check:
            assert tree.num_nodes == 3
        with check:
            assert tree.node(0) == TestNode(
                feature_id=0, op=Operator.LT, threshold=0.5, default_left=True, left=1, right=2
            )
        with check:
            assert tree.leaf_value(1) == -1.0
        with check:
            assert tree.leaf_value(2) == 1.0
        with check:
            assert tree.parent(1) == 0
        with check:
            assert tree.parent(2) == 0

    def test_positions_follow_tree_shape_not_key_order(self) -> None:
        """Keys created in reverse order still compact root-first, level by level."""
        # Arrange
        builder = ModelBuilder(num_features=2)
        builder.create_tree()
        for key in (5, 4, 3, 2, 1):
            builder.create_node(0, key)
        builder.set_test_node(0, 1, feature_id=0, op="<", threshold=1.0, default_left=False, left_key=5, right_key=2)
        builder.set_test_node(0, 2, feature_id=1, op="<=", threshold=2.0, default_left=True, left_key=3, right_key=4)
        builder.set_leaf_node(0, 3, 30.0)
        builder.set_leaf_node(0, 4, 40.0)
        builder.set_leaf_node(0, 5, 50.0)
        builder.set_root_node(0, 1)

        # Act
        tree = builder.commit_model().tree(0)

        # Assert
        with check:
            assert [node.kind for node in tree.nodes] == ["test", "leaf", "test", "leaf", "leaf"]
        with check:
            assert tree.leaf_value(1) == 50.0
        with check:
            assert (tree.left_child(2), tree.right_child(2)) == (3, 4)
        with check:
            assert (tree.leaf_value(3), tree.leaf_value(4)) == (30.0, 40.0)
        with check:
            assert [tree.parent(position) for position in range(5)] == [None, 0, 0, 2, 2]

    def test_single_leaf_tree(self) -> None:
        """A root that is itself a leaf commits to a one-node tree."""
        builder = ModelBuilder(num_features=0)
        builder.create_tree()
        builder.create_node(0, 99)
        builder.set_leaf_node(0, 99, 0.5)
        builder.set_root_node(0, 99)

        model = builder.commit_model()

        assert model.tree(0).nodes == (LeafNode(leaf_value=0.5),)

    def test_compaction_starts_from_given_root_key(self) -> None:
        """Compaction places the given root key at position 0 whatever the dict order."""
        # Arrange
        nodes: dict[int, StagedNode] = {
            1: StagedLeafNode(key=1, leaf_value=-2.0),
            2: StagedLeafNode(key=2, leaf_value=2.0),
            7: StagedTestNode(
                key=7, feature_id=0, op=Operator.GE, threshold=0.0, default_left=False, left_key=2, right_key=1
            ),
        }

        # Act
        tree = _compact_staged_tree(nodes, 7)

        # Assert
        with check:
            assert tree.node(0) == TestNode(
                feature_id=0, op=Operator.GE, threshold=0.0, default_left=False, left=1, right=2
            )
        with check:
            assert (tree.leaf_value(1), tree.leaf_value(2)) == (2.0, -2.0)

    def test_empty_builder_commits_empty_model(self) -> None:
        """A builder with no trees commits to a model with no trees."""
        model = ModelBuilder(num_features=4).commit_model()

        with check:
            assert model.num_trees == 0
        with check:
            assert model.num_features == 4

    def test_every_committed_tree_is_consistent(self, stage_stump: Callable[..., int]) -> None:
        """Each child names its parent and each tree has exactly one root."""
        # Arrange
        builder = ModelBuilder(num_features=1)
        for root_key in (0, 100, 200):
            stage_stump(builder, root_key=root_key)

        # Act
        model = builder.commit_model()

        # Assert
        for tree in model.trees:
            with check:
                assert sum(node.is_root for node in tree.nodes) == 1
            for position, node in enumerate(tree.nodes):
                if isinstance(node, TestNode):
                    with check:
                        assert tree.node(node.left).parent == position
                    with check:
                        assert tree.node(node.right).parent == position

    def test_staging_survives_commit(self, stump_builder: ModelBuilder) -> None:
        """The builder keeps its staged trees after a successful commit."""
        before = _snapshot(stump_builder)

        stump_builder.commit_model()

        assert _snapshot(stump_builder) == before

    def test_committed_model_is_independent_of_builder(
        self, stump_builder: ModelBuilder, stage_stump: Callable[..., int]
    ) -> None:
        """Later mutations and commits do not change models already issued."""
        # Arrange
        first = stump_builder.commit_model()
        first_dump = first.model_dump()

        # Act
        stump_builder.delete_tree(0)
        stage_stump(stump_builder, threshold=9.0)
        second = stump_builder.commit_model()

        # Assert
        with check:
            assert first.model_dump() == first_dump
        with check:
            assert second.tree(0).node(0).threshold == 9.0
        with check:
            assert first.tree(0).node(0).threshold == 0.5


class TestFailedCommit:
    """Tests for commit-time validation failures."""

    def test_missing_root(self) -> None:
        """Without a root designation the commit fails and staging is untouched."""
        # Arrange
        builder = ModelBuilder(num_features=1)
        builder.create_tree()
        for key in (10, 11, 12):
            builder.create_node(0, key)
        builder.set_test_node(0, 10, feature_id=0, op="<", threshold=0.5, default_left=True, left_key=11, right_key=12)
        builder.set_leaf_node(0, 11, -1.0)
        builder.set_leaf_node(0, 12, 1.0)
        before = _snapshot(builder)

        # Act
        with pytest.raises(ValidationFailedError) as exc_info:
            builder.commit_model()

        # Assert
        with check:
            assert exc_info.value.problems == {0: ["no root designated"]}
        with check:
            assert _snapshot(builder) == before

    def test_dangling_child_fails_whole_model(self, stage_stump: Callable[..., int]) -> None:
        """A dangling reference in tree 1 prevents tree 0 from being committed too."""
        # Arrange
        builder = ModelBuilder(num_features=1)
        stage_stump(builder)
        tree_index = builder.create_tree()
        builder.create_node(tree_index, 0)
        builder.create_node(tree_index, 1)
        builder.set_test_node(
            tree_index, 0, feature_id=0, op="<", threshold=0.0, default_left=True, left_key=1, right_key=2
        )
        builder.set_leaf_node(tree_index, 1, 0.0)
        builder.set_root_node(tree_index, 0)
        before = _snapshot(builder)

        # Act
        with pytest.raises(ValidationFailedError) as exc_info:
            builder.commit_model()

        # Assert
        with check:
            assert exc_info.value.tree_indices == [1]
        with check:
            assert exc_info.value.problems[1] == ["node 0 has dangling child reference 2"]
        with check:
            assert _snapshot(builder) == before

    def test_empty_node(self) -> None:
        """A reachable node without a role is reported."""
        builder = _builder_with_root_test(left_role="empty")

        with pytest.raises(ValidationFailedError) as exc_info:
            builder.commit_model()

        assert exc_info.value.problems == {0: ["node 1 is empty (no role assigned)"]}

    def test_cycle(self) -> None:
        """A child pointing back at an ancestor is reported as reached twice."""
        # Arrange
        builder = ModelBuilder(num_features=1)
        builder.create_tree()
        for key in (0, 1, 2):
            builder.create_node(0, key)
        builder.set_test_node(0, 0, feature_id=0, op="<", threshold=0.0, default_left=True, left_key=1, right_key=2)
        builder.set_test_node(0, 1, feature_id=0, op="<", threshold=-1.0, default_left=True, left_key=0, right_key=2)
        builder.set_leaf_node(0, 2, 1.0)
        builder.set_root_node(0, 0)
        before = _snapshot(builder)

        # Act
        with pytest.raises(ValidationFailedError) as exc_info:
            builder.commit_model()

        # Assert
        problems = exc_info.value.problems[0]
        with check:
            assert "node 0 is reached more than once (cycle or shared child)" in problems
        with check:
            assert "node 2 is reached more than once (cycle or shared child)" in problems
        with check:
            assert _snapshot(builder) == before

    def test_self_reference(self) -> None:
        """A test node naming itself as a child is reported."""
        builder = ModelBuilder(num_features=1)
        builder.create_tree()
        builder.create_node(0, 0)
        builder.create_node(0, 1)
        builder.set_test_node(0, 0, feature_id=0, op="<", threshold=0.0, default_left=True, left_key=0, right_key=1)
        builder.set_leaf_node(0, 1, 1.0)
        builder.set_root_node(0, 0)

        with pytest.raises(ValidationFailedError) as exc_info:
            builder.commit_model()

        assert exc_info.value.problems == {0: ["node 0 references itself as a child"]}

    def test_orphan(self) -> None:
        """Nodes not reachable from the root are reported together."""
        builder = _builder_with_root_test(left_role="leaf")
        builder.create_node(0, 7)
        builder.create_node(0, 8)

        with pytest.raises(ValidationFailedError) as exc_info:
            builder.commit_model()

        assert exc_info.value.problems == {0: ["nodes [7, 8] are not reachable from root 0"]}

    def test_feature_out_of_range(self) -> None:
        """Test nodes must reference a feature below the builder's feature count."""
        builder = _builder_with_root_test(left_role="leaf", feature_id=3)

        with pytest.raises(ValidationFailedError) as exc_info:
            builder.commit_model()

        assert exc_info.value.problems == {0: ["node 0 tests feature 3, but the model has 1 features"]}

    def test_repair_then_commit(self) -> None:
        """After a failed commit the reported problem can be fixed and the commit retried."""
        # Arrange
        builder = _builder_with_root_test(left_role="empty")
        with pytest.raises(ValidationFailedError):
            builder.commit_model()

        # Act
        builder.set_leaf_node(0, 1, -2.0)
        model = builder.commit_model()

        # Assert
        assert model.tree(0).leaf_value(1) == -2.0


class TestFromModel:
    """Tests for staging a finalized model back into a builder."""

    def test_round_trip_yields_equal_model(self, two_tree_model: Model) -> None:
        """Committing a builder staged from a model reproduces the model."""
        builder = ModelBuilder.from_model(two_tree_model)

        assert builder.commit_model() == two_tree_model

    def test_positions_become_keys(self, two_tree_model: Model) -> None:
        """Staging keys are the node positions and position 0 is the root."""
        builder = ModelBuilder.from_model(two_tree_model)

        with check:
            assert builder.num_features == 2
        with check:
            assert builder.node_keys(1) == (0, 1, 2, 3, 4)
        with check:
            assert builder.root_key(1) == 0

    def test_staged_copy_can_be_edited(self, stump_tree: Tree) -> None:
        """Editing a staged copy leaves the source model unchanged."""
        # Arrange
        source = Model(num_features=1, trees=(stump_tree,))
        builder = ModelBuilder.from_model(source)

        # Act
        builder.delete_tree(0)
        edited = builder.commit_model()

        # Assert
        with check:
            assert edited.num_trees == 0
        with check:
            assert source.num_trees == 1


def _snapshot(builder: ModelBuilder) -> list[tuple[int | None, dict[int, StagedNode]]]:
    """Capture every staged tree's root designation and node records.

    Args:
        builder (ModelBuilder): The builder to inspect.

    Returns:
        list[tuple[int | None, dict[int, StagedNode]]]: One entry per staged tree.
    """
    return [
        (
            builder.root_key(tree_index),
            {key: builder.get_node(tree_index, key) for key in builder.node_keys(tree_index)},
        )
        for tree_index in range(builder.num_trees)
    ]


def _builder_with_root_test(*, left_role: str, feature_id: int = 0) -> ModelBuilder:
    """Build a one-tree builder whose root (key 0) tests a feature with children 1 and 2.

    Args:
        left_role (str): "leaf" to make key 1 a leaf, "empty" to leave it without a role.
        feature_id (int): Feature tested by the root.

    Returns:
        ModelBuilder: Builder with one feature and one staged tree.
    """
    builder = ModelBuilder(num_features=1)
    builder.create_tree()
    for key in (0, 1, 2):
        builder.create_node(0, key)
    builder.set_test_node(
        0, 0, feature_id=feature_id, op="<", threshold=0.0, default_left=True, left_key=1, right_key=2
    )
    if left_role == "leaf":
        builder.set_leaf_node(0, 1, -1.0)
    builder.set_leaf_node(0, 2, 1.0)
    builder.set_root_node(0, 0)
    return builder
