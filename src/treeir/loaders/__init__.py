"""Model sources: the loader registry and the built-in formats.

Importing this package registers the "json" and "xgboost_json" loaders on
`default_registry`. scikit-learn estimators are converted in memory with
`treeir.loaders.sklearn.convert_sklearn`.
"""

from __future__ import annotations

from pathlib import Path
from typing import BinaryIO

from treeir.loaders.native import dump_model, load_json, save_model
from treeir.loaders.registry import Loader, LoaderRegistry, default_registry
from treeir.loaders.xgboost import load_xgboost_json
from treeir.model import Model


def load_model(format_name: str, source: str | Path | BinaryIO) -> Model:
    """Load a model with the default registry.

    Args:
        format_name (str): Registered format name, such as "json" or "xgboost_json".
        source (str | Path | BinaryIO): A file path or an open binary stream.

    Returns:
        Model: The loaded model.

    Raises:
        LoaderNotFoundError: If no loader is registered under `format_name`.
        FormatError: If the loader cannot interpret the source.
    """
    return default_registry.load(format_name, source)


__all__ = [
    "Loader",
    "LoaderRegistry",
    "default_registry",
    "dump_model",
    "load_json",
    "load_model",
    "load_xgboost_json",
    "save_model",
]
