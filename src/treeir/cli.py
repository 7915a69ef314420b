"""``treeir-dump``: load a model and print its breadth-first dump.

Settings are read, highest priority first, from command-line flags
(``--input_format json --input_path model.json``), ``TREEIR_``-prefixed
environment variables, and a ``.env`` file in the working directory.
"""

from __future__ import annotations

from collections.abc import Sequence
from pathlib import Path
from typing import Literal

from loguru import logger
from pydantic import Field, PositiveInt, ValidationError
from pydantic_settings import BaseSettings

from treeir.exceptions import FormatError, LoaderNotFoundError
from treeir.loaders import load_model
from treeir.logging import enable_logging
from treeir.printer import format_model, format_model_table

EXIT_OK = 0
EXIT_LOAD_FAILED = 1
EXIT_BAD_SETTINGS = 2


class CLISettings(
    BaseSettings,
    env_prefix="TREEIR_",
    env_file=".env",
    env_file_encoding="utf-8",
    extra="ignore",
):
    """Settings for the ``treeir-dump`` command.

    Attributes:
        input_format (str): Registered loader name, such as "json" or "xgboost_json".
        input_path (Path): Path of the model file.
        style (Literal["text", "table"]): Breadth-first text dump or markdown node table.
        log_level (str): Minimum level of log messages written to stderr.
        max_rows (PositiveInt): Row limit for the table style.
    """

    input_format: str = Field(description="Registered loader name, such as 'json' or 'xgboost_json'.")
    input_path: Path = Field(description="Path of the model file.")
    style: Literal["text", "table"] = Field(default="text", description="Output style.")
    log_level: Literal["TRACE", "DEBUG", "INFO", "COMMIT", "WARNING", "ERROR", "CRITICAL"] = Field(
        default="INFO", description="Minimum level of log messages written to stderr."
    )
    max_rows: PositiveInt = Field(default=100, description="Row limit for the table style.")


def main(argv: Sequence[str] | None = None) -> int:
    """Run the dump command.

    Args:
        argv (Sequence[str] | None): Command-line arguments, excluding the
            program name. If None, ``sys.argv`` is parsed.

    Returns:
        int: 0 on success, 1 if the model could not be loaded, 2 if the
            settings are invalid.
    """
    try:
        settings = CLISettings(_cli_parse_args=list(argv) if argv is not None else True)
    except ValidationError as exc:
        with enable_logging(level="ERROR"):
            logger.error("Invalid settings", errors=exc.error_count(), detail=str(exc))
        return EXIT_BAD_SETTINGS

    with enable_logging(level=settings.log_level):
        try:
            model = load_model(settings.input_format, settings.input_path)
        except (FormatError, LoaderNotFoundError, OSError) as exc:
            logger.error("Model could not be loaded", path=str(settings.input_path), error=str(exc))
            return EXIT_LOAD_FAILED

        logger.info("Dumping model", num_trees=model.num_trees, style=settings.style)
        if settings.style == "table":
            print(format_model_table(model, num_rows=settings.max_rows))
        else:
            print(format_model(model))
    return EXIT_OK


if __name__ == "__main__":
    raise SystemExit(main())
