"""Code sandbox: run generated analysis code in a child interpreter.

The generated code sees the dataset rows as ``input_data`` (a list of
dicts) and must hand back its answer by calling ``send_result(value)``
exactly once. The value must be JSON-serializable.
"""

from __future__ import annotations

import asyncio
import json
import logging
import os
import signal
import sys
import tempfile
from dataclasses import dataclass
from typing import Any, Protocol, runtime_checkable

from turnwise.errors import ErrorCode
from turnwise.tool.summary import truncate_output

logger = logging.getLogger(__name__)

RESULT_MARKER = "__TURNWISE_RESULT__"

_RUNNER = f"""
import json, sys

_sent = []

def send_result(value):
    if _sent:
        raise RuntimeError("send_result() called more than once")
    _sent.append(value)

input_data = json.load(sys.stdin)

with open(sys.argv[1], encoding="utf-8") as _f:
    _code = _f.read()

exec(compile(_code, "analysis.py", "exec"), {{"input_data": input_data, "send_result": send_result}})

if _sent:
    sys.stdout.write("\\n{RESULT_MARKER}" + json.dumps(_sent[0], default=str) + "\\n")
"""


@dataclass
class SandboxResult:
    """Outcome of one code execution: ``result`` on success, else ``error``."""

    result: Any = None
    error: str | None = None
    stdout: str = ""

    @property
    def ok(self) -> bool:
        return self.error is None


@runtime_checkable
class CodeSandbox(Protocol):
    async def run(self, code: str, input_data: Any, timeout: float) -> SandboxResult: ...


class SubprocessSandbox:
    """Executes code with a separate Python process per run.

    This isolates crashes and runaway loops from the engine, but it is not
    a security boundary: the child runs with the engine's privileges.
    """

    def __init__(self, python: str | None = None, workdir: str | None = None) -> None:
        self._python = python or sys.executable
        self._workdir = workdir

    async def run(self, code: str, input_data: Any, timeout: float) -> SandboxResult:
        with tempfile.TemporaryDirectory(prefix="turnwise-sandbox-") as tmp:
            runner_path = os.path.join(tmp, "runner.py")
            code_path = os.path.join(tmp, "analysis.py")
            with open(runner_path, "w", encoding="utf-8") as f:
                f.write(_RUNNER)
            with open(code_path, "w", encoding="utf-8") as f:
                f.write(code)

            process = await asyncio.create_subprocess_exec(
                self._python,
                "-I",
                runner_path,
                code_path,
                stdin=asyncio.subprocess.PIPE,
                stdout=asyncio.subprocess.PIPE,
                stderr=asyncio.subprocess.PIPE,
                cwd=self._workdir or tmp,
                start_new_session=True,  # New process group
            )

            payload = json.dumps(input_data, default=str).encode("utf-8")
            try:
                stdout, stderr = await asyncio.wait_for(
                    process.communicate(input=payload), timeout=timeout
                )
            except asyncio.TimeoutError:
                await _kill_group(process)
                return SandboxResult(error=f"Code execution timed out after {timeout:g}s")
            except BaseException:
                # Cancelled turn: the child must not outlive it
                await _kill_group(process)
                raise

        out = stdout.decode("utf-8", errors="replace") if stdout else ""
        err = stderr.decode("utf-8", errors="replace") if stderr else ""

        if process.returncode != 0:
            logger.debug("Sandbox exited with %s", process.returncode)
            return SandboxResult(
                error=truncate_output(err.strip()) or f"Process exited with code {process.returncode}",
                stdout=truncate_output(out),
            )

        printed, marker, encoded = out.rpartition(RESULT_MARKER)
        if not marker:
            return SandboxResult(
                error="Code execution failed to produce a result. Call send_result(value) once.",
                stdout=truncate_output(out),
            )
        try:
            value = json.loads(encoded.strip())
        except json.JSONDecodeError as e:
            return SandboxResult(error=f"Result was not valid JSON: {e}", stdout=truncate_output(printed))
        return SandboxResult(result=value, stdout=truncate_output(printed))


async def _kill_group(process: asyncio.subprocess.Process) -> None:
    """Kill the child's whole process group and reap it."""
    if process.returncode is None:
        try:
            os.killpg(os.getpgid(process.pid), signal.SIGKILL)
        except ProcessLookupError:
            pass
    await process.wait()


def classify_sandbox_error(message: str) -> ErrorCode:
    """Map a sandbox error message to its error code."""
    lowered = message.lower()
    if "timed out" in lowered:
        return ErrorCode.CODE_EXECUTION_TIMEOUT
    if "failed to produce a result" in lowered:
        return ErrorCode.CODE_EXECUTION_NO_RESULT
    return ErrorCode.CODE_EXECUTION_FAILED
