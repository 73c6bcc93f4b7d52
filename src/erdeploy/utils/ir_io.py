"""Utilities for loading and saving parse results from/to JSON files."""

from pathlib import Path
from pydantic import TypeAdapter
from erdeploy.ir.schema import ParseResult


def load_parse_result(path: Path) -> ParseResult:
    """
    Load a ParseResult from a JSON file.

    Args:
        path: Path to the JSON file

    Returns:
        Loaded ParseResult instance

    Raises:
        FileNotFoundError: If the file doesn't exist
        ValueError: If the file is empty or not a valid ParseResult
    """
    path = Path(path)
    if not path.exists():
        raise FileNotFoundError(f"Parse result file not found: {path}")

    content = path.read_text(encoding="utf-8").strip()
    if not content:
        raise ValueError(f"Parse result file is empty: {path}")

    try:
        return TypeAdapter(ParseResult).validate_json(content)
    except Exception as e:
        raise ValueError(f"Failed to load parse result from {path}: {e}") from e


def save_parse_result(result: ParseResult, path: Path) -> None:
    """
    Save a ParseResult to a JSON file, creating parent directories.

    Args:
        result: ParseResult to save
        path: Destination path
    """
    path = Path(path)
    path.parent.mkdir(parents=True, exist_ok=True)
    path.write_text(result.model_dump_json(indent=2), encoding="utf-8")
