import json
import stat
from datetime import datetime, timezone

import pytest

from fail2scan.core.executor import ScanExecutor, scan_dir_name
from fail2scan.core.models import OutputDirectoryError, ToolRun
from fail2scan.scanners import nmap as nmap_scan

from conftest import FakeRunner

IP = "203.0.113.7"
START = datetime(2025, 10, 12, 10, 0, 0, 123000, tzinfo=timezone.utc)

NMAP_OUT = """Starting Nmap 7.94 ( https://nmap.org )
Nmap scan report for 203.0.113.7
PORT     STATE    SERVICE VERSION
22/tcp   open     ssh     OpenSSH 9.6
80/tcp   open     http    nginx
443/tcp  closed   https
8080/tcp filtered http-proxy
 3306/tcp open mysql
"""


@pytest.fixture(autouse=True)
def unprivileged(monkeypatch):
    monkeypatch.setattr(nmap_scan, "is_privileged", lambda: False)


def make_executor(tmp_path, runner, **kw):
    return ScanExecutor(
        tmp_path / "out",
        nmap_args="-sS -Pn -p- -T4 -sV",
        fallback_root=kw.pop("fallback_root", tmp_path / "fallback"),
        runner=runner,
        clock=lambda: START,
        **kw,
    )


def test_scan_writes_four_artifacts(tmp_path):
    runner = FakeRunner({"nmap": (0, NMAP_OUT, "")})
    result = make_executor(tmp_path, runner).run(IP)

    expected = tmp_path / "out" / "2025-10-12" / "203.0.113.7_2025-10-12T10-00-00-123Z"
    assert result.out_dir == expected
    assert sorted(p.name for p in expected.iterdir()) == ["dig.txt", "nmap.txt", "summary.json", "whois.txt"]
    assert stat.S_IMODE(expected.stat().st_mode) == 0o750

    summary = json.loads((expected / "summary.json").read_text())
    assert summary["ip"] == IP
    assert summary["ts"] == "2025-10-12T10:00:00.123Z"
    assert summary["cmds"]["nmap"] == {"ok": True, "path": "nmap.txt", "args": "-sT -Pn -p- -T4 -sV"}
    assert summary["cmds"]["dig"] == {"ok": True, "path": "dig.txt"}
    assert summary["cmds"]["whois"] == {"ok": True, "path": "whois.txt"}
    assert summary["open_ports"] == ["22/tcp   open     ssh     OpenSSH 9.6", "80/tcp   open     http    nginx"]


def test_tools_run_in_order_with_expected_arguments(tmp_path):
    runner = FakeRunner()
    make_executor(tmp_path, runner).run(IP)
    assert runner.calls == [
        ["nmap", "-sT", "-Pn", "-p-", "-T4", "-sV", IP],
        ["dig", "-x", IP, "+short"],
        ["whois", IP],
    ]


def test_open_ports_extracted_even_when_nmap_fails(tmp_path):
    runner = FakeRunner({"nmap": (1, NMAP_OUT, "QUITTING!")})
    result = make_executor(tmp_path, runner).run(IP)

    nmap_txt = (result.out_dir / "nmap.txt").read_text()
    assert nmap_txt.startswith(NMAP_OUT)
    assert nmap_txt.endswith("\n\nSTDERR:\nQUITTING!")

    summary = json.loads((result.out_dir / "summary.json").read_text())
    assert summary["cmds"]["nmap"]["ok"] is False
    expected = [
        line.strip() for line in nmap_txt.splitlines()
        if line[:1].isdigit() and "/tcp" in line and line.split()[1] == "open"
    ]
    assert summary["open_ports"] == expected == [
        "22/tcp   open     ssh     OpenSSH 9.6",
        "80/tcp   open     http    nginx",
    ]


def test_empty_stderr_is_not_appended(tmp_path):
    runner = FakeRunner({"nmap": (0, NMAP_OUT, "")})
    result = make_executor(tmp_path, runner).run(IP)
    assert "STDERR" not in (result.out_dir / "nmap.txt").read_text()


def test_tool_failures_are_isolated(tmp_path):
    runner = FakeRunner(
        {"whois": ToolRun(None, error="whois: [Errno 2] No such file or directory")},
        raises={"dig": RuntimeError("dig exploded")},
    )
    result = make_executor(tmp_path, runner).run(IP)

    assert result.cmds["nmap"].ok is True
    assert result.cmds["dig"].ok is False
    assert result.cmds["dig"].err == "dig exploded"
    assert result.cmds["whois"].ok is False
    assert "No such file" in (result.out_dir / "whois.txt").read_text()

    summary = json.loads((result.out_dir / "summary.json").read_text())
    assert summary["cmds"]["whois"]["ok"] is False
    assert summary["cmds"]["whois"]["path"] == "whois.txt"


def test_dig_output_includes_stderr_block(tmp_path):
    runner = FakeRunner({"dig": (9, "", ";; connection timed out")})
    result = make_executor(tmp_path, runner).run(IP)
    assert (result.out_dir / "dig.txt").read_text() == "\n\nSTDERR:\n;; connection timed out"
    assert result.cmds["dig"].ok is False
    assert result.cmds["dig"].err == "exit status 9"


def test_missing_nmap_capture_gives_empty_port_list(tmp_path):
    runner = FakeRunner(raises={"nmap": OSError("spawn failed")})
    result = make_executor(tmp_path, runner).run(IP)
    assert result.cmds["nmap"].ok is False
    assert result.open_ports == []


def test_privileged_run_keeps_syn_scan(tmp_path, monkeypatch):
    monkeypatch.setattr(nmap_scan, "is_privileged", lambda: True)
    runner = FakeRunner()
    make_executor(tmp_path, runner).run(IP)
    assert runner.calls[0][:2] == ["nmap", "-sS"]


def test_fallback_root_when_primary_unusable(tmp_path):
    blocker = tmp_path / "blocker"
    blocker.write_text("")
    executor = ScanExecutor(
        blocker / "out",
        fallback_root=tmp_path / "fallback",
        runner=FakeRunner(),
        clock=lambda: START,
    )
    result = executor.run(IP)
    assert result.out_dir.parent == tmp_path / "fallback" / "2025-10-12"
    assert (result.out_dir / "summary.json").exists()


def test_no_directory_anywhere_raises(tmp_path):
    blocker = tmp_path / "blocker"
    blocker.write_text("")
    runner = FakeRunner()
    executor = ScanExecutor(
        blocker / "out", fallback_root=blocker / "fallback", runner=runner, clock=lambda: START
    )
    with pytest.raises(OutputDirectoryError):
        executor.run(IP)
    assert runner.calls == []


def test_ipv6_directory_name_is_sanitized():
    assert scan_dir_name("2001:db8::1", "2025-10-12T10:00:00.123Z") == "2001_db8_1_2025-10-12T10-00-00-123Z"


def test_build_args_downgrades_syn_scan_only_when_unprivileged():
    assert nmap_scan.build_args("-sS -Pn -p-", privileged=False) == ["-sT", "-Pn", "-p-"]
    assert nmap_scan.build_args("-sS -Pn -p-", privileged=True) == ["-sS", "-Pn", "-p-"]
    assert nmap_scan.build_args("  -sV   -T4 ", privileged=False) == ["-sV", "-T4"]
