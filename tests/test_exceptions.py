"""Tests for custom exceptions.

This module checks that every treeir exception derives from TreeIRError and
the matching builtin, stores its structured attributes, and renders readable
messages.
"""

from __future__ import annotations

import pytest
from pytest_check import check

from treeir.exceptions import (
    AlreadyDefinedError,
    DuplicateKeyError,
    FormatError,
    InUseError,
    LoaderNotFoundError,
    NotFoundError,
    OutOfRangeError,
    TreeIRError,
    ValidationFailedError,
)


class TestExceptionHierarchy:
    """Tests for base classes shared by the exception family."""

    @pytest.mark.parametrize(
        ("error", "builtin"),
        [
            (NotFoundError(tree_index=0), KeyError),
            (DuplicateKeyError(tree_index=0, key=1), ValueError),
            (AlreadyDefinedError(tree_index=0, key=1, role="leaf"), ValueError),
            (InUseError(tree_index=0, key=1, referrers=[2]), ValueError),
            (ValidationFailedError({0: ["no root designated"]}), ValueError),
            (OutOfRangeError(position=3, size=3), IndexError),
            (FormatError("json", "bad"), ValueError),
            (LoaderNotFoundError("csv", ["json"]), KeyError),
        ],
    )
    def test_error_is_treeir_error_and_builtin(self, error: TreeIRError, builtin: type[Exception]) -> None:
        """Each error should be catchable both as TreeIRError and as its builtin base."""
        with check:
            assert isinstance(error, TreeIRError)
        with check:
            assert isinstance(error, builtin)

    def test_builtin_handler_catches_treeir_error(self) -> None:
        """Existing `except KeyError` handlers should keep working for NotFoundError."""
        with pytest.raises(KeyError):
            raise NotFoundError(tree_index=2, key=7)


class TestNotFoundError:
    """Tests for NotFoundError."""

    def test_missing_tree_message(self) -> None:
        """A missing tree should be named without a key."""
        # Arrange / Act
        error = NotFoundError(tree_index=4)

        # Assert
        with check:
            assert str(error) == "Tree 4 not found"
        with check:
            assert error.tree_index == 4
        with check:
            assert error.key is None

    def test_missing_node_message_is_not_quoted(self) -> None:
        """KeyError normally quotes its argument; NotFoundError should render a plain message."""
        # Arrange / Act
        error = NotFoundError(tree_index=0, key=10)

        # Assert
        with check:
            assert str(error) == "Node 10 not found in tree 0"
        with check:
            assert repr(error) == "NotFoundError(tree_index=0, key=10)"


class TestBuilderErrors:
    """Tests for DuplicateKeyError, AlreadyDefinedError and InUseError attributes."""

    def test_duplicate_key_attributes(self) -> None:
        """DuplicateKeyError should keep the tree index and key."""
        error = DuplicateKeyError(tree_index=1, key=10)

        with check:
            assert error.tree_index == 1
        with check:
            assert error.key == 10
        with check:
            assert "10" in str(error)

    def test_already_defined_keeps_role(self) -> None:
        """AlreadyDefinedError should report the role the node already has."""
        error = AlreadyDefinedError(tree_index=0, key=3, role="test")

        with check:
            assert error.role == "test"
        with check:
            assert "test" in str(error)

    def test_in_use_sorts_referrers(self) -> None:
        """Referrers should be stored sorted so messages are deterministic."""
        error = InUseError(tree_index=0, key=5, referrers=[9, 2])

        with check:
            assert error.referrers == [2, 9]
        with check:
            assert "InUseError" in repr(error)


class TestValidationFailedError:
    """Tests for ValidationFailedError problem reporting."""

    def test_reports_every_failing_tree(self) -> None:
        """Problems of several trees should be listed in tree order."""
        # Arrange
        problems = {3: ["no root designated"], 0: ["node 1 is empty (no role assigned)", "nodes [4] are orphans"]}

        # Act
        error = ValidationFailedError(problems)

        # Assert
        with check:
            assert error.tree_indices == [0, 3]
        with check:
            assert error.problems is problems
        with check:
            assert error.format_details().splitlines() == [
                "Tree 0: node 1 is empty (no role assigned)",
                "Tree 0: nodes [4] are orphans",
                "Tree 3: no root designated",
            ]
        with check:
            assert "3 problem(s)" in str(error)


class TestLoaderErrors:
    """Tests for OutOfRangeError, FormatError and LoaderNotFoundError."""

    def test_out_of_range_message_names_kind(self) -> None:
        """The message should say whether a node or a tree position was out of range."""
        with check:
            assert str(OutOfRangeError(position=5, size=3)) == "Node position 5 is out of range [0, 3)"
        with check:
            assert str(OutOfRangeError(position=2, size=2, kind="tree")) == "Tree position 2 is out of range [0, 2)"

    def test_format_error_carries_format_and_reason(self) -> None:
        """FormatError should expose the format name and reason separately."""
        error = FormatError("xgboost_json", "missing learner")

        with check:
            assert error.format_name == "xgboost_json"
        with check:
            assert error.reason == "missing learner"
        with check:
            assert str(error) == "Cannot load 'xgboost_json' model: missing learner"

    def test_loader_not_found_lists_available_formats(self) -> None:
        """LoaderNotFoundError should list registered formats, sorted, in its message."""
        error = LoaderNotFoundError("lightgbm", ["xgboost_json", "json"])

        with check:
            assert error.available == ["json", "xgboost_json"]
        with check:
            assert str(error) == "No loader registered for format 'lightgbm'. Available formats: ['json', 'xgboost_json']"
