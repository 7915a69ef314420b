"""treeir: an in-memory representation and builder for decision-tree ensembles."""

from loguru import logger

from treeir.builder import ModelBuilder
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
from treeir.loaders import dump_model, load_model, save_model
from treeir.logging import PACKAGE_NAME, enable_logging
from treeir.model import LeafNode, Model, TestNode, Tree
from treeir.operators import Operator
from treeir.printer import format_model

logger.disable(PACKAGE_NAME)  # noqa: RUF067 - Disable logging for the treeir module by default

__all__ = [
    "AlreadyDefinedError",
    "DuplicateKeyError",
    "FormatError",
    "InUseError",
    "LeafNode",
    "LoaderNotFoundError",
    "Model",
    "ModelBuilder",
    "NotFoundError",
    "Operator",
    "OutOfRangeError",
    "TestNode",
    "Tree",
    "TreeIRError",
    "ValidationFailedError",
    "dump_model",
    "enable_logging",
    "format_model",
    "load_model",
    "save_model",
]
