"""
Shared fixtures: temporary directories, the CLI runner and provider-tree builders.
"""
import tempfile
from pathlib import Path

import pytest
from typer.testing import CliRunner


FOUND = {"PLpgSQL_var": {"refname": "found", "datatype": {"PLpgSQL_type": {"typname": "BOOLEAN"}}}}


@pytest.fixture
def temp_dir():
    """Create temporary directory for test files."""
    with tempfile.TemporaryDirectory() as temp_dir:
        yield Path(temp_dir)


@pytest.fixture
def runner():
    """CLI test runner."""
    return CliRunner()


@pytest.fixture
def function_ast():
    """Build a provider tree: ``function_ast(body, datums=None)``.

    Without explicit datums the table holds only the ``found`` sentinel.
    """
    def build(body, datums=None):
        return [{
            "PLpgSQL_function": {
                "datums": datums if datums is not None else [FOUND],
                "action": {"PLpgSQL_stmt_block": {"lineno": 1, "body": body}},
            }
        }]
    return build
