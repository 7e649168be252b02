"""
Remote code execution for Coderoom.

Submits a buffer to a Judge0-compatible service and returns what the
program printed. The service runs untrusted code; Coderoom never does.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Any

import httpx

from .config import DEFAULT_JUDGE0_URL, DEFAULT_RAPIDAPI_HOST
from .errors import ExecutionError
from .protocol import DEFAULT_LANGUAGE, Language

logger = logging.getLogger(__name__)

DEFAULT_TIMEOUT = 30.0

# Judge0 language ids; languages missing here run as JavaScript
JUDGE0_LANGUAGE_IDS: dict[Language, int] = {
    Language.JAVASCRIPT: 63,
    Language.TYPESCRIPT: 74,
    Language.PYTHON: 71,
    Language.JAVA: 62,
    Language.CPP: 54,
    Language.CSHARP: 51,
    Language.PHP: 68,
    Language.RUBY: 72,
    Language.GO: 60,
    Language.RUST: 73,
}


def language_id(language: Language) -> int:
    """Map a room language to the execution service's language id."""
    return JUDGE0_LANGUAGE_IDS.get(language, JUDGE0_LANGUAGE_IDS[DEFAULT_LANGUAGE])


@dataclass
class ExecutionResult:
    """Outcome of one program run."""

    stdout: str | None = None
    stderr: str | None = None
    compile_output: str | None = None
    status: dict[str, Any] | None = None

    def to_dict(self) -> dict[str, Any]:
        return {
            "stdout": self.stdout,
            "stderr": self.stderr,
            "compile_output": self.compile_output,
            "status": self.status,
        }


class CodeExecutor:
    """
    Client for a Judge0-compatible submission endpoint.

    Example:
        executor = CodeExecutor(api_key=settings.rapidapi_key)
        result = await executor.run("print(1)", Language.PYTHON)
    """

    def __init__(
        self,
        url: str = DEFAULT_JUDGE0_URL,
        api_key: str = "",
        api_host: str = DEFAULT_RAPIDAPI_HOST,
        timeout: float = DEFAULT_TIMEOUT,
        transport: httpx.AsyncBaseTransport | None = None,
    ):
        """
        Initialize the executor.

        Args:
            url: Submission URL; must wait for the result synchronously.
            api_key: Value of the X-RapidAPI-Key header.
            api_host: Value of the X-RapidAPI-Host header.
            timeout: Request timeout in seconds.
            transport: Optional httpx transport, used by tests.
        """
        self.url = url
        self.api_key = api_key
        self.api_host = api_host
        self.timeout = timeout
        self._transport = transport

    async def run(
        self,
        code: str,
        language: Language = DEFAULT_LANGUAGE,
        stdin: str = "",
    ) -> ExecutionResult:
        """
        Execute a program and wait for its output.

        Raises:
            ExecutionError: If the service is unreachable or answers with
                an error status or a non-JSON body.
        """
        body = {
            "source_code": code,
            "language_id": language_id(language),
            "stdin": stdin or "",
        }
        headers = {
            "content-type": "application/json",
            "X-RapidAPI-Key": self.api_key,
            "X-RapidAPI-Host": self.api_host,
        }

        try:
            async with httpx.AsyncClient(timeout=self.timeout, transport=self._transport) as client:
                response = await client.post(self.url, json=body, headers=headers)
                response.raise_for_status()
                data = response.json()
        except httpx.HTTPStatusError as e:
            logger.error(f"Execution service returned {e.response.status_code}: {e.response.text[:200]}")
            raise ExecutionError(f"Execution service returned {e.response.status_code}") from e
        except httpx.HTTPError as e:
            logger.error(f"Execution service request failed: {e}")
            raise ExecutionError(str(e) or "Execution service unreachable") from e
        except ValueError as e:
            raise ExecutionError("Execution service returned invalid JSON") from e

        if not isinstance(data, dict):
            raise ExecutionError("Execution service returned an unexpected body")

        logger.debug(f"Executed {language.value} program, status={data.get('status')}")
        return ExecutionResult(
            stdout=data.get("stdout"),
            stderr=data.get("stderr"),
            compile_output=data.get("compile_output"),
            status=data.get("status"),
        )


__all__ = [
    "JUDGE0_LANGUAGE_IDS",
    "language_id",
    "ExecutionResult",
    "CodeExecutor",
]
