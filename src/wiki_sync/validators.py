"""
Input validation for wiki-sync.

Validates inclusion patterns entered by operators before they reach the
store.
"""


def format_validation_error(field_name: str, reason: str) -> str:
    """
    Generate consistent error message for validation failures.

    Args:
        field_name: Human-readable field name (e.g., "Inclusion pattern")
        reason: Description of validation failure (e.g., "cannot be empty")

    Returns:
        Formatted error message string
    """
    return f"{field_name} {reason}"


def validate_inclusion_pattern(pattern: str) -> tuple[bool, str]:
    """
    Validate a source inclusion pattern.

    Patterns are repository-relative paths or directory prefixes, written
    without leading or trailing slashes.

    Returns:
        Tuple of (is_valid, error_message).
    """
    if not pattern or not pattern.strip():
        return (
            False,
            format_validation_error("Inclusion pattern", "cannot be empty"),
        )

    if pattern != pattern.strip():
        return (
            False,
            format_validation_error(
                "Inclusion pattern", "cannot have surrounding whitespace"
            ),
        )

    if pattern.startswith("/") or pattern.endswith("/"):
        return (
            False,
            format_validation_error(
                "Inclusion pattern",
                "must not start or end with '/'",
            ),
        )

    if ".." in pattern.split("/") or "//" in pattern:
        return (
            False,
            format_validation_error(
                "Inclusion pattern", "cannot contain '..' or empty segments"
            ),
        )

    return (True, "")
