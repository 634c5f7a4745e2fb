"""shell.py 执行器单元测试"""

from __future__ import annotations

import sys

import pytest

from addonsync.core.exceptions import ExecutionError
from addonsync.utils.shell import CommandResult, LocalExecutor, run_checked
from tests.conftest import RecordingExecutor


class TestLocalExecutor:
    def test_success(self, tmp_path) -> None:
        r = LocalExecutor().execute([sys.executable, "-c", "print('hello')"], cwd=str(tmp_path))
        assert r.success
        assert "hello" in r.stdout

    def test_nonzero_is_not_raised(self, tmp_path) -> None:
        r = LocalExecutor().execute([sys.executable, "-c", "raise SystemExit(3)"], cwd=str(tmp_path))
        assert r.returncode == 3
        assert not r.success

    def test_missing_command(self) -> None:
        with pytest.raises(ExecutionError, match="命令不存在"):
            LocalExecutor().execute(["addonsync-no-such-binary"])


class TestRunChecked:
    def test_failure_raises_with_label(self) -> None:
        ex = RecordingExecutor()
        ex.on("git", returncode=2, stderr="fatal: boom")
        with pytest.raises(ExecutionError, match="git clone失败") as exc:
            run_checked(ex, ["git", "clone", "x"], label="git clone")
        assert exc.value.returncode == 2
        assert "boom" in exc.value.stderr

    def test_success_returns_result(self) -> None:
        ex = RecordingExecutor()
        ex.on("gh", stdout="ok")
        r = run_checked(ex, ["gh", "api", "x"])
        assert r == CommandResult(0, "ok", "")
