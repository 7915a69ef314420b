"""Loader for XGBoost's JSON model format (``Booster.save_model("model.json")``).

Each XGBoost tree is a set of parallel arrays indexed by node id. Node ids are
used directly as staging keys in a `ModelBuilder`, so structural problems in
the source (dangling children, unreachable nodes) surface as builder
validation problems and are reported as a `FormatError`.

XGBoost tests ``x < split_condition`` and takes the left child when it holds,
which maps onto `Operator.LT` with no reordering. Leaves are nodes whose
`left_children` entry is -1; their value is stored in `split_conditions`.
DART trees are scaled by their `weight_drop` entry so the model stays a plain
sum of leaves. The booster's `base_score` is not part of the tree structure
and is ignored.
"""

from __future__ import annotations

from typing import BinaryIO, Final

from loguru import logger
from pydantic import BaseModel, Field, ValidationError, model_validator

from treeir.builder import ModelBuilder
from treeir.exceptions import FormatError, TreeIRError, ValidationFailedError
from treeir.loaders.registry import default_registry, summarize_validation_error
from treeir.model import Model
from treeir.operators import Operator

FORMAT_NAME: Final[str] = "xgboost_json"

_LEAF_MARKER: Final[int] = -1
_CATEGORICAL_SPLIT: Final[int] = 1

# ---------------------------------------------------------------------------
# Document schema (only the fields this loader reads)
# ---------------------------------------------------------------------------


class _XGBoostTree(BaseModel):
    left_children: list[int]
    right_children: list[int]
    split_indices: list[int]
    split_conditions: list[float]
    default_left: list[bool]
    split_type: list[int] = Field(default_factory=list)

    @model_validator(mode="after")
    def _validate_array_lengths(self) -> _XGBoostTree:
        """Validate that the per-node arrays are parallel.

        Returns:
            _XGBoostTree: The validated instance.

        Raises:
            ValueError: If the arrays do not all have the same length.
        """
        lengths = {
            "left_children": len(self.left_children),
            "right_children": len(self.right_children),
            "split_indices": len(self.split_indices),
            "split_conditions": len(self.split_conditions),
            "default_left": len(self.default_left),
        }
        if self.split_type:
            lengths["split_type"] = len(self.split_type)
        if len(set(lengths.values())) != 1:
            raise ValueError(f"per-node arrays have mismatched lengths: {lengths}")
        return self


class _XGBoostTrees(BaseModel):
    trees: list[_XGBoostTree]


class _XGBoostDartBooster(BaseModel):
    model: _XGBoostTrees


class _XGBoostGradientBooster(BaseModel):
    name: str
    model: _XGBoostTrees | None = None
    gbtree: _XGBoostDartBooster | None = None
    weight_drop: list[float] = Field(default_factory=list)

    @model_validator(mode="after")
    def _validate_tree_booster(self) -> _XGBoostGradientBooster:
        """Validate that the booster stores trees and, for DART, one weight per tree.

        Returns:
            _XGBoostGradientBooster: The validated instance.

        Raises:
            ValueError: If the booster is not "gbtree" or "dart", its trees are
                missing, or the DART weights do not match the trees.
        """
        if self.name not in {"gbtree", "dart"}:
            raise ValueError(f"unsupported booster '{self.name}'; only tree boosters can be loaded")
        if self.model is None and self.gbtree is None:
            raise ValueError(f"booster '{self.name}' has no tree model")
        if self.name == "dart" and len(self.weight_drop) != len(self.trees):
            raise ValueError(f"dart booster has {len(self.weight_drop)} tree weights for {len(self.trees)} trees")
        return self

    @property
    def trees(self) -> list[_XGBoostTree]:
        if self.model is not None:
            return self.model.trees
        if self.gbtree is None:
            raise ValueError(f"booster '{self.name}' has no tree model")
        return self.gbtree.model.trees

    @property
    def tree_weights(self) -> list[float]:
        """list[float]: Scale applied to each tree's leaves; DART's ``weight_drop``, otherwise 1."""
        if self.name == "dart":
            return self.weight_drop
        return [1.0] * len(self.trees)


class _XGBoostLearnerModelParam(BaseModel):
    num_feature: int = Field(ge=0)


class _XGBoostLearner(BaseModel):
    learner_model_param: _XGBoostLearnerModelParam
    gradient_booster: _XGBoostGradientBooster


class _XGBoostDocument(BaseModel):
    learner: _XGBoostLearner


# ---------------------------------------------------------------------------
# Loader
# ---------------------------------------------------------------------------


@default_registry.loader(FORMAT_NAME)
def load_xgboost_json(stream: BinaryIO) -> Model:
    """Read an XGBoost JSON model.

    Args:
        stream (BinaryIO): Binary stream holding the JSON document.

    Returns:
        Model: One tree per boosting round and output group, in file order.

    Raises:
        FormatError: If the document is not valid XGBoost JSON, uses a
            non-tree booster or categorical splits, or describes a tree that
            is not well formed.
    """
    try:
        document = _XGBoostDocument.model_validate_json(stream.read())
    except ValidationError as exc:
        raise FormatError(FORMAT_NAME, summarize_validation_error(exc)) from exc

    learner = document.learner
    builder = ModelBuilder(learner.learner_model_param.num_feature)
    try:
        booster = learner.gradient_booster
        for xgb_tree, weight in zip(booster.trees, booster.tree_weights, strict=True):
            _stage_tree(builder, xgb_tree, weight)
        model = builder.commit_model()
    except FormatError:
        raise
    except ValidationFailedError as exc:
        raise FormatError(FORMAT_NAME, exc.format_details()) from exc
    except (TreeIRError, ValidationError) as exc:
        raise FormatError(FORMAT_NAME, str(exc)) from exc

    logger.debug("XGBoost trees converted", num_trees=model.num_trees, booster=booster.name)
    return model


def _stage_tree(builder: ModelBuilder, xgb_tree: _XGBoostTree, weight: float = 1.0) -> None:
    """Stage one XGBoost tree, using node ids as keys and node 0 as root.

    Args:
        builder (ModelBuilder): The builder receiving the tree.
        xgb_tree (_XGBoostTree): The decoded tree arrays.
        weight (float): Factor applied to every leaf value (DART tree weight).

    Raises:
        FormatError: If the tree contains a categorical split.
    """
    tree_index = builder.create_tree()
    num_nodes = len(xgb_tree.left_children)
    for node_id in range(num_nodes):
        builder.create_node(tree_index, node_id)

    for node_id in range(num_nodes):
        if xgb_tree.left_children[node_id] == _LEAF_MARKER:
            builder.set_leaf_node(tree_index, node_id, weight * xgb_tree.split_conditions[node_id])
            continue
        if xgb_tree.split_type and xgb_tree.split_type[node_id] == _CATEGORICAL_SPLIT:
            raise FormatError(FORMAT_NAME, f"tree {tree_index} node {node_id} uses a categorical split")
        builder.set_test_node(
            tree_index,
            node_id,
            feature_id=xgb_tree.split_indices[node_id],
            op=Operator.LT,
            threshold=xgb_tree.split_conditions[node_id],
            default_left=xgb_tree.default_left[node_id],
            left_key=xgb_tree.left_children[node_id],
            right_key=xgb_tree.right_children[node_id],
        )

    if num_nodes:
        builder.set_root_node(tree_index, 0)
