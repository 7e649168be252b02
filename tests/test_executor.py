"""Tests for the remote code executor."""

from __future__ import annotations

import json

import httpx
import pytest

from coderoom.errors import ExecutionError
from coderoom.executor import CodeExecutor, language_id
from coderoom.protocol import Language


def executor_for(handler) -> CodeExecutor:
    return CodeExecutor(
        url="https://judge0.test/submissions?wait=true",
        api_key="key",
        api_host="judge0.test",
        transport=httpx.MockTransport(handler),
    )


def test_language_ids():
    assert language_id(Language.PYTHON) == 71
    assert language_id(Language.CPP) == 54
    # No runtime for markup; falls back to JavaScript
    assert language_id(Language.HTML) == 63


async def test_run_posts_submission():
    captured = {}

    def handler(request: httpx.Request) -> httpx.Response:
        captured["url"] = str(request.url)
        captured["headers"] = request.headers
        captured["body"] = json.loads(request.content)
        return httpx.Response(200, json={"stdout": "hi\n", "status": {"id": 3, "description": "Accepted"}})

    result = await executor_for(handler).run("puts 'hi'", Language.RUBY, stdin="x")

    assert result.stdout == "hi\n"
    assert result.stderr is None
    assert result.status == {"id": 3, "description": "Accepted"}
    assert captured["url"] == "https://judge0.test/submissions?wait=true"
    assert captured["headers"]["X-RapidAPI-Key"] == "key"
    assert captured["headers"]["X-RapidAPI-Host"] == "judge0.test"
    assert captured["body"] == {"source_code": "puts 'hi'", "language_id": 72, "stdin": "x"}


async def test_error_status_raises():
    def handler(request: httpx.Request) -> httpx.Response:
        return httpx.Response(429, json={"message": "quota"})

    with pytest.raises(ExecutionError):
        await executor_for(handler).run("1")


async def test_unreachable_service_raises():
    def handler(request: httpx.Request) -> httpx.Response:
        raise httpx.ConnectError("connection refused", request=request)

    with pytest.raises(ExecutionError):
        await executor_for(handler).run("1")


async def test_non_json_body_raises():
    def handler(request: httpx.Request) -> httpx.Response:
        return httpx.Response(200, text="<html>")

    with pytest.raises(ExecutionError):
        await executor_for(handler).run("1")
