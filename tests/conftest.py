import sys
from pathlib import Path

import pytest

# Allow running the suite from a checkout without installing the package.
SRC = Path(__file__).resolve().parents[1] / "src"
if str(SRC) not in sys.path:
    sys.path.insert(0, str(SRC))

from fail2scan.core.models import ToolRun  # noqa: E402


class FakeRunner:
    """Stands in for run_subprocess; ``results`` maps tool -> (exit, stdout, stderr)."""

    def __init__(self, results=None, raises=None):
        self.calls = []
        self.results = results or {}
        self.raises = raises or {}

    def __call__(self, cmd, stdout_path=None, timeout=None):
        self.calls.append(list(cmd))
        tool = cmd[0]
        if tool in self.raises:
            raise self.raises[tool]
        result = self.results.get(tool, (0, f"{tool} output\n", ""))
        if isinstance(result, ToolRun):
            return result
        exit_status, out, err = result
        if stdout_path is not None:
            Path(stdout_path).write_text(out, encoding="utf-8")
            return ToolRun(exit_status, stderr=err)
        return ToolRun(exit_status, stdout=out, stderr=err)


class FakeClock:
    def __init__(self, now: float = 1_700_000_000.0):
        self.now = now

    def __call__(self) -> float:
        return self.now


@pytest.fixture
def fake_runner():
    return FakeRunner()


@pytest.fixture
def clock():
    return FakeClock()


@pytest.fixture(autouse=True)
def _isolated_env(monkeypatch, tmp_path):
    # keep tests away from ~/.fail2scan* and any FAIL2SCAN_* set on the host
    for name in list(__import__("os").environ):
        if name.startswith("FAIL2SCAN_"):
            monkeypatch.delenv(name)
    monkeypatch.setenv("FAIL2SCAN_STATUS_LOG", "")
    monkeypatch.setenv("FAIL2SCAN_STATE_FILE", str(tmp_path / "state.json"))
