"""Native JSON format: the pydantic serialization of `Model`."""

from __future__ import annotations

from pathlib import Path
from typing import BinaryIO

from loguru import logger
from pydantic import ValidationError

from treeir.exceptions import FormatError
from treeir.loaders.registry import default_registry, summarize_validation_error
from treeir.model import Model

FORMAT_NAME = "json"


def dump_model(model: Model, *, indent: int | None = None) -> str:
    """Serialize a model to the native JSON format.

    Args:
        model (Model): The model to serialize.
        indent (int | None): Indentation for pretty-printing. Defaults to None (compact).

    Returns:
        str: JSON text readable by the "json" loader.
    """
    return model.model_dump_json(indent=indent)


def save_model(model: Model, path: str | Path, *, indent: int | None = None) -> None:
    """Write a model to a file in the native JSON format.

    Args:
        model (Model): The model to write.
        path (str | Path): Destination file path.
        indent (int | None): Indentation for pretty-printing. Defaults to None (compact).
    """
    Path(path).write_text(dump_model(model, indent=indent), encoding="utf-8")
    logger.info("Model saved", path=str(path), num_trees=model.num_trees)


@default_registry.loader(FORMAT_NAME)
def load_json(stream: BinaryIO) -> Model:
    """Read a model in the native JSON format.

    Structural invariants are enforced while decoding, so a stream describing
    a malformed tree is rejected just like a truncated one.

    Args:
        stream (BinaryIO): Binary stream holding the JSON document.

    Returns:
        Model: The decoded model.

    Raises:
        FormatError: If the stream is not valid JSON or does not describe a
            well-formed model.
    """
    try:
        return Model.model_validate_json(stream.read())
    except ValidationError as exc:
        raise FormatError(FORMAT_NAME, summarize_validation_error(exc)) from exc

