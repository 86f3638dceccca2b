"""
Input validation for document paths and space keys.

Relative paths are the keys of the persisted sync state, so every path that
enters the hierarchy or the state store goes through
``normalize_relative_path`` first.
"""

import re
from pathlib import PurePosixPath

_SPACE_KEY_PATTERN = re.compile(r"^[A-Za-z0-9_~-]+$")


# ---------------------------------------------------------------------------
# Error message formatting helpers
# ---------------------------------------------------------------------------


def format_validation_error(field_name: str, reason: str) -> str:
    """
    Generate consistent error message for validation failures.

    Args:
        field_name: Human-readable field name (e.g., "Relative path")
        reason: Description of validation failure (e.g., "cannot be empty")

    Returns:
        Formatted error message string
    """
    return f"{field_name} {reason}"


def validate_relative_path(path: str) -> tuple[bool, str]:
    """
    Validate a document path relative to the documentation root.

    Args:
        path: The path to validate (either separator style)

    Returns:
        Tuple of (is_valid, error_message).
        Returns (True, "") if valid, (False, reason) if invalid.

    Validation rules:
        - Cannot be empty or whitespace-only
        - Cannot be absolute
        - Cannot contain '..' segments (path traversal protection)
    """
    if not path or not path.strip():
        return (
            False,
            format_validation_error("Relative path", "cannot be empty"),
        )

    unified = path.replace("\\", "/")
    if unified.startswith("/") or re.match(r"^[A-Za-z]:/", unified):
        return (
            False,
            format_validation_error(
                "Relative path", f"cannot be absolute: '{path}'"
            ),
        )

    if ".." in unified.split("/"):
        return (
            False,
            format_validation_error(
                "Relative path", f"cannot contain '..': '{path}'"
            ),
        )

    return (True, "")


def normalize_relative_path(path: str) -> str:
    """Return the canonical POSIX form of a relative document path.

    Backslashes become forward slashes, ``.`` segments and duplicate
    separators are dropped.

    Raises:
        ValueError: If the path fails ``validate_relative_path``.
    """
    ok, message = validate_relative_path(path)
    if not ok:
        raise ValueError(message)

    parts = [
        part
        for part in path.strip().replace("\\", "/").split("/")
        if part not in ("", ".")
    ]
    if not parts:
        raise ValueError(
            format_validation_error("Relative path", "cannot be empty")
        )
    return str(PurePosixPath(*parts))


def validate_space_key(space_key: str) -> tuple[bool, str]:
    """
    Validate a remote space key.

    Returns:
        Tuple of (is_valid, error_message).
    """
    if not space_key or not space_key.strip():
        return (
            False,
            format_validation_error("Space key", "cannot be empty"),
        )

    if not _SPACE_KEY_PATTERN.match(space_key.strip()):
        return (
            False,
            format_validation_error(
                "Space key",
                f"contains invalid characters: '{space_key}'",
            ),
        )

    return (True, "")
