"""Tests for specsync.validators."""

import pytest

from specsync.validators import (
    format_validation_error,
    validate_content,
    validate_project_id,
)


def test_format_validation_error():
    assert format_validation_error("Project id", "cannot be empty") == (
        "Project id cannot be empty"
    )


@pytest.mark.parametrize(
    "project_id",
    ["proj-1", "a", "5f0c2a8e-1b7d-4c1e-9a0b-3d2e1f4a5b6c", "my_project"],
)
def test_valid_project_ids(project_id):
    assert validate_project_id(project_id) == (True, "")


@pytest.mark.parametrize(
    "project_id, reason",
    [
        ("", "cannot be empty"),
        ("   ", "cannot be empty"),
        ("../etc", "cannot contain"),
        ("a/b", "cannot contain"),
        ("-leading", "may only contain"),
        ("has space", "may only contain"),
        ("q?x=1", "may only contain"),
    ],
)
def test_invalid_project_ids(project_id, reason):
    valid, message = validate_project_id(project_id)
    assert not valid
    assert reason in message


def test_empty_content_allowed():
    assert validate_content("") == (True, "")


def test_content_size_limit_counts_bytes():
    # 3 bytes per character in UTF-8
    valid, message = validate_content("€" * 10, max_size=20)
    assert not valid
    assert "exceeds maximum size of 20 bytes" in message
    assert validate_content("€" * 6, max_size=20) == (True, "")
