"""A fake code generation service served through httpx.MockTransport."""

from __future__ import annotations

import json
import re
from pathlib import Path

import httpx
import pytest

ENDPOINT = "https://agent.example.com/v1"
UPLOAD_HOST = "upload.example.com"


class FakeAgent:
    """Routes requests the way the real service does and remembers what it saw."""

    endpoint = ENDPOINT

    def __init__(self, total_iterations: int = 3, polls_before_complete: int = 1) -> None:
        self.total = total_iterations
        self.remaining = total_iterations
        self.polls_before_complete = polls_before_complete
        self.uploads: list[bytes] = []
        self.submissions: list[dict] = []
        self.requests: list[httpx.Request] = []
        self.new_file_contents = {"src/health.py": "def health():\n    return 'ok'\n"}
        self.deleted_files = ["src/legacy.py"]
        self._polls = 0

    def handler(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)
        path = request.url.path

        if request.url.host == UPLOAD_HOST and request.method == "PUT":
            self.uploads.append(request.content)
            return httpx.Response(200)

        if request.method == "POST" and path == "/v1/conversations":
            return httpx.Response(201, json={"conversationId": "conv-42"})

        if request.method == "POST" and path.endswith("/upload-url"):
            n = len(self.uploads) + 1
            return httpx.Response(
                200,
                json={"uploadUrl": f"https://{UPLOAD_HOST}/put/{n}", "uploadId": f"upload-{n}"},
            )

        if request.method == "POST" and path.endswith("/code-generations"):
            if self.remaining == 0:
                return httpx.Response(
                    402, json={"code": "ServiceQuotaExceededException", "message": "no more"}
                )
            self.submissions.append(json.loads(request.content))
            self.remaining -= 1
            self._polls = 0
            return httpx.Response(200, json={"codeGenerationId": f"job-{len(self.submissions)}"})

        if request.method == "GET" and re.search(r"/code-generations/[^/]+$", path):
            self._polls += 1
            status = "Complete" if self._polls > self.polls_before_complete else "InProgress"
            return httpx.Response(
                200,
                json={
                    "codeGenerationStatus": {"status": status},
                    "codeGenerationRemainingIterationCount": self.remaining,
                    "codeGenerationTotalIterationCount": self.total,
                },
            )

        if request.method == "GET" and path.endswith("/export"):
            return httpx.Response(
                200,
                json={
                    "code_generation_result": {
                        "new_file_contents": self.new_file_contents,
                        "deleted_files": self.deleted_files,
                        "references": [],
                    }
                },
            )

        return httpx.Response(404, json={"message": f"no route for {request.method} {path}"})


@pytest.fixture
def agent() -> FakeAgent:
    return FakeAgent()


@pytest.fixture
def project(tmp_path: Path) -> Path:
    root = tmp_path / "project"
    (root / "src").mkdir(parents=True)
    (root / "src" / "app.py").write_text("app = object()\n")
    (root / "src" / "legacy.py").write_text("legacy = True\n")
    return root


@pytest.fixture
def mock_http(agent: FakeAgent, monkeypatch: pytest.MonkeyPatch) -> FakeAgent:
    """Make every httpx.AsyncClient built by taskassist talk to the fake agent."""
    real_client = httpx.AsyncClient
    transport = httpx.MockTransport(agent.handler)

    def _client(**kwargs) -> httpx.AsyncClient:
        return real_client(transport=transport, **kwargs)

    monkeypatch.setattr(httpx, "AsyncClient", _client)
    return agent
