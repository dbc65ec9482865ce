"""File, code, and shell tools confined to a single project root."""

from __future__ import annotations

import logging
import re
import subprocess
from pathlib import Path
from typing import Any

logger = logging.getLogger(__name__)

_SKIPPED_DIRS = frozenset(
    {".git", ".hg", ".venv", "venv", "node_modules", "__pycache__", ".mypy_cache"}
)
_MAX_LINE_LENGTH = 120
_OUTPUT_LIMIT = 64_000


def resolve_path(root: Path, path: str) -> Path:
    """Resolve ``path`` against ``root`` and refuse anything outside it."""
    base = root.resolve()
    candidate = (base / path).resolve()
    if candidate != base and not candidate.is_relative_to(base):
        raise PermissionError(f"Path escapes project root: {path}")
    return candidate


def read_file(root: Path, params: dict[str, Any]) -> dict[str, Any]:
    target = resolve_path(root, params["path"])
    return {"path": params["path"], "content": target.read_text(encoding="utf-8")}


def write_file(root: Path, params: dict[str, Any]) -> dict[str, Any]:
    target = resolve_path(root, params["path"])
    target.parent.mkdir(parents=True, exist_ok=True)
    content = params["content"]
    target.write_text(content, encoding="utf-8")
    return {"path": params["path"], "bytes_written": len(content.encode("utf-8"))}


def list_files(root: Path, params: dict[str, Any]) -> dict[str, Any]:
    base = root.resolve()
    target = resolve_path(root, params["path"])
    if not target.is_dir():
        raise NotADirectoryError(f"Not a directory: {params['path']}")
    pattern = "**/*" if params.get("recursive") else "*"
    entries = []
    for item in sorted(target.glob(pattern)):
        relative = item.relative_to(base)
        if _SKIPPED_DIRS.intersection(relative.parts):
            continue
        entries.append({"path": relative.as_posix(), "type": "dir" if item.is_dir() else "file"})
    return {"path": params["path"], "entries": entries}


def search_codebase(root: Path, params: dict[str, Any]) -> dict[str, Any]:
    regex = re.compile(params["pattern"])
    base = root.resolve()
    start = resolve_path(root, params.get("path") or ".")
    limit = int(params.get("max_results") or 100)
    matches: list[dict[str, Any]] = []
    for file_path in sorted(_iter_files(start)):
        try:
            lines = file_path.read_text(encoding="utf-8").splitlines()
        except (UnicodeDecodeError, OSError):
            continue
        for number, line in enumerate(lines, start=1):
            found = regex.search(line)
            if found is None:
                continue
            matches.append(
                {
                    "path": file_path.relative_to(base).as_posix(),
                    "line": number,
                    "match": found.group(0),
                    "text": line.strip(),
                }
            )
            if len(matches) >= limit:
                return {"pattern": params["pattern"], "matches": matches, "truncated": True}
    return {"pattern": params["pattern"], "matches": matches, "truncated": False}


def analyze_code(root: Path, params: dict[str, Any]) -> dict[str, Any]:
    """Line-based metrics and lint-style findings for one source file."""
    content = resolve_path(root, params["file_path"]).read_text(encoding="utf-8")
    lines = content.splitlines()

    metrics = {
        "lines": len(lines),
        "functions": len(
            re.findall(r"^\s*(?:async\s+)?def\s+\w+|\bfunction\s+\w+", content, re.M)
        ),
        "classes": len(re.findall(r"^\s*class\s+\w+", content, re.M)),
        "comments": sum(1 for line in lines if line.lstrip().startswith(("#", "//"))),
        "complexity": len(re.findall(r"\b(?:if|elif|for|while|except|case)\b", content)),
    }

    issues: list[dict[str, Any]] = []
    for number, line in enumerate(lines, start=1):
        if re.search(r"\bprint\(|console\.log", line):
            issues.append(
                _issue(number, line, "warning", "Remove debug output", "no-debug-output")
            )
        if "TODO" in line or "FIXME" in line:
            issues.append(_issue(number, line, "info", "Unresolved TODO/FIXME comment", "no-todo"))
        if len(line) > _MAX_LINE_LENGTH:
            issues.append(
                {
                    "line": number,
                    "column": _MAX_LINE_LENGTH,
                    "severity": "info",
                    "message": f"Line exceeds {_MAX_LINE_LENGTH} characters",
                    "rule": "max-line-length",
                }
            )
    return {"file_path": params["file_path"], "metrics": metrics, "issues": issues}


def execute_command(root: Path, params: dict[str, Any], *, timeout_s: float) -> dict[str, Any]:
    cwd = resolve_path(root, params.get("cwd") or ".")
    return _run_shell(params["command"], cwd=cwd, timeout_s=timeout_s)


def run_tests(root: Path, params: dict[str, Any], *, timeout_s: float) -> dict[str, Any]:
    result = _run_shell(params["test_command"], cwd=root.resolve(), timeout_s=timeout_s)
    result["passed"] = result["exit_code"] == 0
    return result


def _run_shell(command: str, *, cwd: Path, timeout_s: float) -> dict[str, Any]:
    logger.info("tool_shell event=start cwd=%s command=%r", cwd, command)
    completed = subprocess.run(
        command,
        shell=True,
        cwd=cwd,
        capture_output=True,
        text=True,
        timeout=timeout_s,
        check=False,
    )
    logger.info("tool_shell event=finish exit_code=%d", completed.returncode)
    return {
        "command": command,
        "exit_code": completed.returncode,
        "stdout": completed.stdout[-_OUTPUT_LIMIT:],
        "stderr": completed.stderr[-_OUTPUT_LIMIT:],
    }


def _iter_files(start: Path):
    if start.is_file():
        yield start
        return
    for path in start.rglob("*"):
        if path.is_file() and not _SKIPPED_DIRS.intersection(path.relative_to(start).parts):
            yield path


def _issue(number: int, line: str, severity: str, message: str, rule: str) -> dict[str, Any]:
    match = re.search(r"print\(|console\.log|TODO|FIXME", line)
    return {
        "line": number,
        "column": match.start() if match else 0,
        "severity": severity,
        "message": message,
        "rule": rule,
    }
