"""Demonstrates how to enable and configure logging in treeir.

treeir logging is disabled by default. Users opt in by calling ``enable_logging()``,
which returns a ``LoggingHandle``. The handle can be used as a context manager
(``with enable_logging(): ...``) or disabled manually via ``handle.disable()``.
When the last active handle is disabled, treeir logging is automatically turned off.

Key concepts shown here:

- ``level``: controls the minimum log level. The custom ``COMMIT`` level
  (numeric value 25, between INFO and WARNING) surfaces finalized models and
  is the default. ``DEBUG`` also shows every staging mutation.
- ``log_format``: ``"short"`` shows ``timestamp | level | function - message``;
  ``"full"`` adds the module and line number.
- Failed operations log a WARNING before the exception propagates.
- Automatic cleanup: logging is re-disabled when the context manager exits.
"""

import io

from treeir import ModelBuilder, ValidationFailedError, dump_model, enable_logging, format_model, load_model

with enable_logging(level="DEBUG", log_format="full"):
    builder = ModelBuilder(num_features=2)

    # Stage the stump x0 < 0.5 ? -1.0 : 1.0 using arbitrary keys
    tree_index = builder.create_tree()
    for key in (100, 7, 42):
        builder.create_node(tree_index, key)
    builder.set_root_node(tree_index, 100)
    builder.set_test_node(
        tree_index, 100, feature_id=0, op="<", threshold=0.5, default_left=True, left_key=7, right_key=42
    )
    builder.set_leaf_node(tree_index, 7, -1.0)
    builder.set_leaf_node(tree_index, 42, 1.0)

    model = builder.commit_model()
    print(f"\n{format_model(model)}\n")

    # An empty second tree has no root, so this commit is rejected and logged
    builder.create_tree()
    try:
        builder.commit_model()
    except ValidationFailedError as exc:
        print(f"\n{exc.format_details()}\n")

    # Loading through the registry logs the format and tree count
    load_model("json", io.BytesIO(dump_model(model).encode("utf-8")))

# Logging automatically disabled here
