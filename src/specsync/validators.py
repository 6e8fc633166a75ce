"""
Input validation for project identifiers and document content.

Validation runs before any HTTP request is built so that a malformed id can
never be interpolated into a remote URL path.
"""

import re

_PROJECT_ID_PATTERN = re.compile(r"^[A-Za-z0-9][A-Za-z0-9_\-]*$")


def format_validation_error(field_name: str, reason: str) -> str:
    """
    Generate consistent error message for validation failures.

    Args:
        field_name: Human-readable field name (e.g., "Project id")
        reason: Description of validation failure (e.g., "cannot be empty")

    Returns:
        Formatted error message string
    """
    return f"{field_name} {reason}"


def validate_project_id(project_id: str) -> tuple[bool, str]:
    """
    Validate a remote project identifier.

    Returns:
        Tuple of (is_valid, error_message).
        Returns (True, "") if valid, (False, reason) if invalid.

    Validation rules:
        - Cannot be empty or whitespace-only
        - Cannot contain '/' or '..' (it becomes a URL path segment)
        - Must match ^[A-Za-z0-9][A-Za-z0-9_-]*$ (UUIDs and slugs)
    """
    if not project_id or not project_id.strip():
        return (
            False,
            format_validation_error("Project id", "cannot be empty"),
        )

    if ".." in project_id or "/" in project_id:
        return (
            False,
            format_validation_error(
                "Project id", "cannot contain '/' or '..'"
            ),
        )

    if not _PROJECT_ID_PATTERN.match(project_id):
        return (
            False,
            format_validation_error(
                "Project id",
                "may only contain letters, digits, '-' and '_'",
            ),
        )

    return (True, "")


def validate_content(
    content: str, max_size: int = 1_000_000
) -> tuple[bool, str]:
    """
    Validate document content before upload.

    Empty documents are allowed (a freshly created tasks.md is legitimately
    empty); only the size limit is enforced.

    Args:
        content: The content to validate
        max_size: Maximum size in bytes (default: 1,000,000)

    Returns:
        Tuple of (is_valid, error_message).
    """
    content_bytes = len(content.encode("utf-8"))
    if content_bytes > max_size:
        return (
            False,
            format_validation_error(
                "Content", f"exceeds maximum size of {max_size} bytes"
            ),
        )

    return (True, "")
