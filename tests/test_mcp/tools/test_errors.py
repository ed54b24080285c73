"""Tests for mcp/tools/errors.py: error response builders."""

import mcp.types as types

from lm_module_sync.mcp.tools.errors import (
    build_error_response,
    engine_error_response,
)
from lm_module_sync.sync.errors import ConfigCorruptError, PermissionDeniedError


def _get_error_text(result: types.CallToolResult) -> str:
    content = result.content[0]
    assert isinstance(content, types.TextContent)
    return content.text


class TestBuildErrorResponse:
    def test_is_error_flag(self):
        result = build_error_response("not_found", "Not found", "Try again")
        assert isinstance(result, types.CallToolResult)
        assert result.isError is True
        assert len(result.content) == 1

    def test_error_format(self):
        result = build_error_response(
            "remote_unreachable", "Portal down", "Retry later."
        )
        assert (
            _get_error_text(result)
            == "Error (remote_unreachable): Portal down\n\nAction: Retry later."
        )


class TestEngineErrorResponse:
    def test_uses_engine_corrective_action(self):
        error = PermissionDeniedError("denied", directory_name="CPU").to_error()
        text = _get_error_text(engine_error_response(error))
        assert text.startswith("Error (permission_denied): denied")
        assert "Grant read/write access to directory 'CPU'" in text

    def test_appends_tool_hint(self):
        error = ConfigCorruptError("bad json").to_error()
        text = _get_error_text(engine_error_response(error))
        assert "module_dir_status" in text

    def test_missing_error(self):
        result = engine_error_response(None)
        assert result.isError
        assert "server_error" in _get_error_text(result)
