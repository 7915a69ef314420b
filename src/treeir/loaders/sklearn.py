"""Conversion of fitted scikit-learn tree regressors into a `Model`.

scikit-learn sends a sample to ``children_left`` when
``x[feature] <= threshold``, so tests are staged with `Operator.LE`. Node ids
of the underlying ``tree_`` arrays are used as staging keys with node 0 as
root.

Ensembles are made additive: random-forest style averages divide every leaf
by the number of estimators, and gradient boosting multiplies every leaf by
the learning rate. Gradient boosting must be fitted with ``init="zero"``
because the initial estimator is not a tree.
"""

from __future__ import annotations

from typing import Any, Final

from loguru import logger
from sklearn.ensemble import ExtraTreesRegressor, GradientBoostingRegressor, RandomForestRegressor
from sklearn.tree import DecisionTreeRegressor

from treeir.builder import ModelBuilder
from treeir.exceptions import FormatError, TreeIRError, ValidationFailedError
from treeir.model import Model
from treeir.operators import Operator

FORMAT_NAME: Final[str] = "sklearn"

_TREE_LEAF: Final[int] = -1  # sklearn.tree._tree.TREE_LEAF


def convert_sklearn(estimator: Any) -> Model:
    """Convert a fitted scikit-learn regressor into a `Model`.

    Supported estimators are `DecisionTreeRegressor` (and its subclass
    `ExtraTreeRegressor`), `RandomForestRegressor`, `ExtraTreesRegressor` and
    `GradientBoostingRegressor`, all with a single output.

    Args:
        estimator (Any): The fitted estimator.

    Returns:
        Model: One tree per fitted estimator, leaf values scaled so that the
            ensemble output is the sum of the trees.

    Raises:
        FormatError: If the estimator is unsupported, not fitted, has more
            than one output, or is a gradient boosting model with a non-zero
            initial estimator.

    Examples:
        >>> import numpy as np
        >>> from sklearn.tree import DecisionTreeRegressor
        >>> regressor = DecisionTreeRegressor(max_depth=1).fit(np.array([[0.0], [1.0]]), np.array([0.0, 1.0]))
        >>> model = convert_sklearn(regressor)
        >>> model.num_trees, model.tree(0).num_leaves
        (1, 2)
    """
    sklearn_trees, scale = _collect_trees(estimator)
    builder = ModelBuilder(int(estimator.n_features_in_))
    try:
        for sklearn_tree in sklearn_trees:
            _stage_tree(builder, sklearn_tree, scale)
        model = builder.commit_model()
    except ValidationFailedError as exc:
        raise FormatError(FORMAT_NAME, exc.format_details()) from exc
    except TreeIRError as exc:
        raise FormatError(FORMAT_NAME, str(exc)) from exc

    logger.info(
        "scikit-learn estimator converted",
        estimator=type(estimator).__name__,
        num_trees=model.num_trees,
        num_features=model.num_features,
    )
    return model


def _collect_trees(estimator: Any) -> tuple[list[Any], float]:
    """Return the ``tree_`` structures of an estimator and the leaf scale factor.

    Args:
        estimator (Any): The fitted estimator.

    Returns:
        tuple[list[Any], float]: The low-level trees in ensemble order, and
            the factor every leaf value is multiplied by.

    Raises:
        FormatError: If the estimator is unsupported, unfitted or multi-output.
    """
    estimator_name = type(estimator).__name__
    if not isinstance(
        estimator, (DecisionTreeRegressor, RandomForestRegressor, ExtraTreesRegressor, GradientBoostingRegressor)
    ):
        raise FormatError(FORMAT_NAME, f"unsupported estimator {estimator_name}")
    if not hasattr(estimator, "n_features_in_"):
        raise FormatError(FORMAT_NAME, f"{estimator_name} is not fitted")
    if getattr(estimator, "n_outputs_", 1) != 1:
        raise FormatError(FORMAT_NAME, f"{estimator_name} has {estimator.n_outputs_} outputs; only 1 is supported")

    if isinstance(estimator, DecisionTreeRegressor):
        return [estimator.tree_], 1.0
    if isinstance(estimator, GradientBoostingRegressor):
        if estimator.init != "zero":
            raise FormatError(FORMAT_NAME, "gradient boosting must be fitted with init='zero'")
        return [stage[0].tree_ for stage in estimator.estimators_], float(estimator.learning_rate)

    members = estimator.estimators_
    return [member.tree_ for member in members], 1.0 / len(members)


def _stage_tree(builder: ModelBuilder, sklearn_tree: Any, scale: float) -> None:
    """Stage one ``tree_`` structure, using sklearn node ids as keys.

    Args:
        builder (ModelBuilder): The builder receiving the tree.
        sklearn_tree (Any): The `tree_` internal structure of a fitted tree.
        scale (float): Factor applied to every leaf value.
    """
    tree_index = builder.create_tree()
    children_left = sklearn_tree.children_left
    children_right = sklearn_tree.children_right
    # Present since scikit-learn 1.3 on trees fitted with missing values.
    missing_go_to_left = getattr(sklearn_tree, "missing_go_to_left", None)

    for node_id in range(sklearn_tree.node_count):
        builder.create_node(tree_index, node_id)

    for node_id in range(sklearn_tree.node_count):
        left_child = int(children_left[node_id])
        if left_child == _TREE_LEAF:
            leaf_value = float(sklearn_tree.value[node_id][0][0]) * scale
            builder.set_leaf_node(tree_index, node_id, leaf_value)
            continue
        builder.set_test_node(
            tree_index,
            node_id,
            feature_id=int(sklearn_tree.feature[node_id]),
            op=Operator.LE,
            threshold=float(sklearn_tree.threshold[node_id]),
            default_left=bool(missing_go_to_left[node_id]) if missing_go_to_left is not None else True,
            left_key=left_child,
            right_key=int(children_right[node_id]),
        )

    builder.set_root_node(tree_index, 0)
