"""Tests for the entry point and structured logging."""

import json
import logging
import os
from collections.abc import Iterator
from pathlib import Path
from unittest.mock import patch

import pytest

from access_controller.main import JsonFormatter, main

GRANT_YAML = """\
kind: Grant
name: sales-readers
dataSource: ds-warehouse
"""


@pytest.fixture(autouse=True)
def restore_root_logger() -> Iterator[None]:
    root = logging.getLogger()
    handlers = list(root.handlers)
    level = root.level
    yield
    root.handlers = handlers
    root.setLevel(level)


class TestJsonFormatter:
    """Tests for JsonFormatter."""

    def test_extra_fields_included(self) -> None:
        record = logging.LogRecord(
            name="access_controller.owners",
            level=logging.INFO,
            pathname=__file__,
            lineno=1,
            msg="Updated owners",
            args=(),
            exc_info=None,
        )
        record.resource_id = "ap-1"

        log_data = json.loads(JsonFormatter().format(record))

        assert log_data["message"] == "Updated owners"
        assert log_data["level"] == "INFO"
        assert log_data["logger"] == "access_controller.owners"
        assert log_data["resource_id"] == "ap-1"
        assert log_data["timestamp"].endswith("Z")
        assert "pathname" not in log_data

    def test_unserializable_values_stringified(self) -> None:
        record = logging.LogRecord("x", logging.INFO, __file__, 1, "msg", (), None)
        record.path = Path("/specs")

        assert json.loads(JsonFormatter().format(record))["path"] == "/specs"


class TestMain:
    """Tests for main()."""

    def test_valid_declarations(self, tmp_path: Path) -> None:
        (tmp_path / "grants.yaml").write_text(GRANT_YAML)
        env = {"GOVERNANCE_DOMAIN": "acme", "SPECS_DIR": str(tmp_path)}

        with patch.dict(os.environ, env, clear=True):
            assert main() == 0

    def test_invalid_declarations(self, tmp_path: Path) -> None:
        (tmp_path / "grants.yaml").write_text("kind: Grant\nname: ab\n")
        env = {"GOVERNANCE_DOMAIN": "acme", "SPECS_DIR": str(tmp_path)}

        with patch.dict(os.environ, env, clear=True):
            assert main() == 1

    def test_configuration_error(self) -> None:
        with patch.dict(os.environ, {}, clear=True):
            assert main() == 1
