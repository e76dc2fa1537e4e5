"""Unit tests for the codicent CLI."""

import asyncio
import json
from pathlib import Path

import httpx
import pytest
from click.testing import CliRunner

from src.cli import codicent as codicent_cli
from src.client.facade import CodicentClient
from src.retry.models import RetryPolicy
from tests.helpers.api import FakeApi
from tests.helpers.fakes import FakeConnection, FakeTransport, loader_for


class ChattyTransport(FakeTransport):
    """Transport whose connections push one message shortly after starting."""

    def build_connection(self, url, token_provider) -> FakeConnection:  # type: ignore[no-untyped-def]
        connection = super().build_connection(url, token_provider)
        original_start = connection.start

        async def start() -> None:
            await original_start()
            asyncio.get_running_loop().call_later(
                0.01, connection.emit, "NewMessage", {"id": "m9", "content": "pushed"}
            )

        connection.start = start  # type: ignore[method-assign]
        return connection


@pytest.fixture
def api() -> FakeApi:
    """Provide a scripted API."""
    return FakeApi()


@pytest.fixture
def runner(
    api: FakeApi, monkeypatch: pytest.MonkeyPatch
) -> CliRunner:
    """Provide a runner whose commands use fake transports."""
    monkeypatch.setenv("CODICENT_BASE_URL", "https://codicent.test/")
    monkeypatch.delenv("CODICENT_TOKEN", raising=False)

    def factory() -> CodicentClient:
        return CodicentClient(
            transport_loader=loader_for(ChattyTransport()),
            http_client=httpx.AsyncClient(transport=httpx.MockTransport(api)),
            retry_policy=RetryPolicy(max_retries=0, timeout_seconds=1.0),
        )

    monkeypatch.setattr(codicent_cli, "CodicentClient", factory)
    return CliRunner()


class TestPost:
    """Tests for the post command."""

    def test_prints_id(self, runner: CliRunner, api: FakeApi) -> None:
        """Test that the new message ID is printed."""
        api.route("/app/AddChatMessage", httpx.Response(200, json={"id": "m1"}))

        result = runner.invoke(
            codicent_cli.cli, ["--token", "tok", "post", "@proj hello", "--parent-id", "p1"]
        )

        assert result.exit_code == 0, result.output
        assert result.output.strip() == "m1"
        body = FakeApi.body(api.requests[0])
        assert body["content"] == "@proj hello"
        assert body["parentId"] == "p1"

    def test_missing_token(self, runner: CliRunner, api: FakeApi) -> None:
        """Test that a missing token exits with an error."""
        result = runner.invoke(codicent_cli.cli, ["post", "hello"])

        assert result.exit_code == 1
        assert "Token is required" in result.output
        assert api.requests == []

    def test_http_error(self, runner: CliRunner, api: FakeApi) -> None:
        """Test that HTTP errors exit with status 1."""
        api.route("/app/AddChatMessage", httpx.Response(403))

        result = runner.invoke(codicent_cli.cli, ["--token", "tok", "post", "hello"])

        assert result.exit_code == 1
        assert "HTTP error: 403" in result.output


class TestMessages:
    """Tests for the messages command."""

    def test_lists_messages(self, runner: CliRunner, api: FakeApi) -> None:
        """Test plain output."""
        api.route(
            "/app/GetChatMessages",
            httpx.Response(
                200,
                json=[{"id": "m1", "content": "hi", "createdAt": "2024-05-01T10:00:00Z"}],
            ),
        )

        result = runner.invoke(
            codicent_cli.cli, ["--token", "tok", "messages", "--length", "1"]
        )

        assert result.exit_code == 0, result.output
        assert result.output.strip() == "2024-05-01 10:00  m1  hi"
        assert api.requests[0].url.params["length"] == "1"

    def test_json_output(self, runner: CliRunner, api: FakeApi) -> None:
        """Test JSON output keeps the service's field names."""
        api.route("/app/GetChatMessages", httpx.Response(200, json=[{"id": "m1"}]))

        result = runner.invoke(codicent_cli.cli, ["--token", "tok", "messages", "--json"])

        assert result.exit_code == 0, result.output
        payload = json.loads(result.output)
        assert payload[0]["id"] == "m1"
        assert "createdAt" in payload[0]


class TestUpload:
    """Tests for the upload command."""

    def test_uploads_file(self, runner: CliRunner, api: FakeApi, tmp_path: Path) -> None:
        """Test that the file content and name are sent."""
        api.route("/app/UploadFile", httpx.Response(200, json="f1"))
        path = tmp_path / "notes.txt"
        path.write_bytes(b"some notes")

        result = runner.invoke(codicent_cli.cli, ["--token", "tok", "upload", str(path)])

        assert result.exit_code == 0, result.output
        assert result.output.strip() == "f1"
        assert api.requests[0].url.params["filename"] == "notes.txt"
        assert b"some notes" in api.requests[0].content


class TestListen:
    """Tests for the listen command."""

    def test_prints_pushed_messages(self, runner: CliRunner) -> None:
        """Test that pushed messages are printed as JSON lines."""
        result = runner.invoke(
            codicent_cli.cli, ["--token", "tok", "listen", "--count", "1"]
        )

        assert result.exit_code == 0, result.output
        assert json.loads(result.output.strip()) == {"id": "m9", "content": "pushed"}
