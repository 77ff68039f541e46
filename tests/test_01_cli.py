"""CLI tests for the scopestate entry point.

Cases live in 01_cli/*.tests files. The input section starts with an
`args:` line; the rest is fed to stdin, unless it is a `stdin-bytes:`
line holding hex-encoded raw bytes (e.g. "ff fe").

Assertion directives in the expected section:
    exit:             exact exit code
    exit-not:         exit code must NOT equal this
    stderr:           exact stderr content (trailing newline stripped)
    stderr-contains:  stderr must contain substring
    stderr-empty:     stderr must be empty
    stdout-contains:  stdout must contain substring
    stdout-empty:     stdout must be empty
"""

import subprocess
import sys
from pathlib import Path

import pytest

from casefile import discover

CLI_DIR = Path(__file__).parent / "01_cli"
ROOT_DIR = Path(__file__).parent.parent

DIRECTIVES = (
    "exit-not",
    "exit",
    "stderr-contains",
    "stderr-empty",
    "stderr",
    "stdout-contains",
    "stdout-empty",
)


def _parse_case(input_lines: list[str], expected_lines: list[str]) -> dict:
    """Parse input + expected lines into a test case dict."""
    case: dict = {"args": [], "stdin": b"", "assertions": []}
    body = input_lines
    if body and body[0].startswith("args:"):
        case["args"] = body[0][5:].split()
        body = body[1:]
    if body and body[0].startswith("stdin-bytes:"):
        case["stdin"] = bytes.fromhex(body[0][len("stdin-bytes:") :].strip())
    else:
        case["stdin"] = "\n".join(body).encode()

    for line in expected_lines:
        line = line.strip()
        if not line:
            continue
        for kind in DIRECTIVES:
            if line.startswith(kind + ":"):
                value = line[len(kind) + 1 :].strip()
                if kind in ("exit", "exit-not"):
                    case["assertions"].append((kind, int(value)))
                elif kind.endswith("-empty"):
                    case["assertions"].append((kind, None))
                else:
                    case["assertions"].append((kind, value))
                break
        else:
            raise ValueError(f"unknown directive: {line!r}")
    return case


def run_cli(case: dict) -> subprocess.CompletedProcess[bytes]:
    """Run the scopestate CLI from a test case."""
    return subprocess.run(
        [sys.executable, "-m", "src.scopestate", *case["args"]],
        input=case["stdin"],
        capture_output=True,
        cwd=ROOT_DIR,
    )


def check_assertions(
    result: subprocess.CompletedProcess[bytes], assertions: list[tuple]
) -> None:
    """Check all assertions against a CLI result."""
    stdout = result.stdout.decode(errors="replace")
    stderr = result.stderr.decode(errors="replace")
    for kind, value in assertions:
        if kind == "exit":
            assert result.returncode == value, (
                f"expected exit {value}, got {result.returncode}\nstderr: {stderr}"
            )
        elif kind == "exit-not":
            assert result.returncode != value, f"expected exit != {value}"
        elif kind == "stderr":
            assert stderr.rstrip("\n") == value, f"expected stderr {value!r}, got {stderr!r}"
        elif kind == "stderr-contains":
            assert value in stderr, f"expected stderr to contain {value!r}, got {stderr!r}"
        elif kind == "stderr-empty":
            assert stderr == "", f"expected empty stderr, got {stderr!r}"
        elif kind == "stdout-contains":
            assert value in stdout, f"expected stdout to contain {value!r}, got {stdout!r}"
        elif kind == "stdout-empty":
            assert stdout == "", f"expected empty stdout, got {stdout[:200]!r}"


def pytest_generate_tests(metafunc):
    """Parametrize test_cli over all .tests files."""
    if "cli_case" in metafunc.fixturenames:
        params = [
            pytest.param(_parse_case(input_lines, expected_lines), id=test_id)
            for test_id, input_lines, expected_lines in discover(CLI_DIR)
        ]
        metafunc.parametrize("cli_case", params)


def test_cli(cli_case: dict) -> None:
    """Run a single CLI case."""
    result = run_cli(cli_case)
    check_assertions(result, cli_case["assertions"])
