"""Tests for scoped directory access.

Covers:
- Read granted on creation, readwrite on request
- Prompt callback deciding a request
- Revocation blocks reads and writes
- Atomic writes leave no temp files
- Names escaping the directory are rejected
- Non-UTF-8 files decoded through charset-normalizer
"""

from __future__ import annotations

import pytest

from lm_module_sync.sync.directory import (
    READ,
    READWRITE,
    DirectoryGrant,
    DirectoryHandle,
    ensure_permission,
    file_exists,
    read_text,
    read_text_async,
    write_text,
    write_text_async,
)
from lm_module_sync.sync.errors import NotFoundError, PermissionDeniedError
from lm_module_sync.sync.models import PermissionState


class TestPermissions:
    def test_read_granted_on_creation(self, handle):
        assert handle.query_permission(READ) == PermissionState.GRANTED

    def test_readwrite_needs_request(self, handle):
        assert handle.query_permission(READWRITE) == PermissionState.PROMPT

    def test_request_without_prompt_granted(self, handle):
        assert handle.request_permission(READWRITE) == PermissionState.GRANTED
        assert handle.query_permission(READWRITE) == PermissionState.GRANTED

    def test_prompt_callback_consulted(self, module_dir):
        asked = []

        def prompt(h, mode):
            asked.append(mode)
            return True

        handle = DirectoryHandle(module_dir, prompt=prompt)
        ensure_permission(handle)
        ensure_permission(handle)
        assert asked == [READWRITE]

    def test_prompt_refusal_raises_permission_denied(self, module_dir):
        handle = DirectoryHandle(module_dir, prompt=lambda h, mode: False)
        with pytest.raises(PermissionDeniedError) as exc:
            ensure_permission(handle)
        assert exc.value.directory_name == "CPU"
        assert "CPU" in exc.value.to_error().corrective_action

    def test_missing_directory_not_found(self, tmp_path):
        handle = DirectoryHandle(tmp_path / "gone")
        with pytest.raises(NotFoundError):
            handle.query_permission()

    def test_revoke_blocks_reads(self, handle, module_dir):
        (module_dir / "a.groovy").write_text("x")
        handle.revoke()
        with pytest.raises(PermissionDeniedError):
            read_text(handle, "a.groovy")


class TestReadWrite:
    def test_read_missing_returns_none(self, handle):
        assert read_text(handle, "nope.groovy") is None

    def test_write_then_read(self, handle, module_dir):
        grant = ensure_permission(handle)
        written = write_text(grant, "collection.groovy", "return 1\n")
        assert written == len(b"return 1\n")
        assert read_text(handle, "collection.groovy") == "return 1\n"
        assert file_exists(handle, "collection.groovy")

    def test_write_leaves_no_temp_files(self, handle, module_dir):
        grant = ensure_permission(handle)
        write_text(grant, "a.groovy", "one")
        write_text(grant, "a.groovy", "two")
        assert sorted(p.name for p in module_dir.iterdir()) == ["a.groovy"]
        assert (module_dir / "a.groovy").read_text() == "two"

    def test_read_grant_cannot_write(self, handle, module_dir):
        grant = DirectoryGrant(handle=handle, mode=READ)
        with pytest.raises(PermissionDeniedError):
            write_text(grant, "a.groovy", "x")
        assert not (module_dir / "a.groovy").exists()

    def test_write_rechecks_after_revoke(self, handle, module_dir):
        grant = ensure_permission(handle)
        handle.revoke()
        with pytest.raises(PermissionDeniedError):
            write_text(grant, "a.groovy", "x")
        assert not (module_dir / "a.groovy").exists()

    @pytest.mark.parametrize("name", ["../escape.groovy", "sub/a.groovy", "", ".."])
    def test_names_outside_directory_rejected(self, handle, name):
        grant = ensure_permission(handle)
        with pytest.raises(ValueError):
            write_text(grant, name, "x")

    def test_non_utf8_file_decoded(self, handle, module_dir):
        text = "// Température élevée détectée sur le serveur principal\n" * 4
        (module_dir / "legacy.groovy").write_bytes(text.encode("latin-1"))
        decoded = read_text(handle, "legacy.groovy")
        assert "Temp" in decoded
        assert decoded.count("\n") == 4

    def test_empty_file_reads_as_empty_string(self, handle, module_dir):
        (module_dir / "empty.groovy").write_bytes(b"")
        assert read_text(handle, "empty.groovy") == ""


class TestAsyncWrappers:
    async def test_async_round_trip(self, handle):
        grant = ensure_permission(handle)
        await write_text_async(grant, "ad.groovy", "return []")
        assert await read_text_async(handle, "ad.groovy") == "return []"
