"""Tests for the command-line front end"""

import json
from unittest.mock import AsyncMock, MagicMock, patch

import pytest

from mcp_sse_client.cli import build_parser, main, run, _resolve_config
from mcp_sse_client.config import DEFAULT_URL
from mcp_sse_client.errors import ConnectionTimeoutError, RemoteError


@pytest.fixture
def mock_client():
    """Patch MCPClient in the CLI with a mock whose operations succeed"""
    with patch("mcp_sse_client.cli.MCPClient") as client_cls:
        client = MagicMock()
        client.connect = AsyncMock()
        client.disconnect = AsyncMock()
        client.initialize = AsyncMock(return_value={"serverInfo": {"name": "srv"}})
        client.list_tools = AsyncMock(return_value={"tools": [{"name": "echo"}]})
        client.call_tool = AsyncMock(return_value={"content": [{"type": "text", "text": "hi"}]})
        client_cls.from_config.return_value = client
        client.cls = client_cls
        yield client


def parse(*argv):
    return build_parser().parse_args(list(argv))


class TestParser:
    """Test argument parsing"""

    def test_command_required(self):
        """Test a subcommand must be given"""
        with pytest.raises(SystemExit):
            parse()

    def test_call_requires_name(self):
        """Test call without --name is rejected"""
        with pytest.raises(SystemExit):
            parse("call")

    def test_call_defaults(self):
        """Test default tool arguments"""
        args = parse("call", "-n", "echo")

        assert args.name == "echo"
        assert args.args == "{}"
        assert args.url is None

    def test_global_options(self):
        """Test options before the subcommand"""
        args = parse("--timeout", "5", "-vv", "tools", "-u", "http://localhost:7911")

        assert args.timeout == 5.0
        assert args.verbose == 2
        assert args.url == "http://localhost:7911"


class TestResolveConfig:
    """Test how flags, files and environment combine"""

    def test_defaults_from_environment(self, monkeypatch):
        """Test environment is used without a config file"""
        monkeypatch.setenv("MCP_SSE_URL", "http://env.example.com")
        monkeypatch.delenv("MCP_SSE_TIMEOUT", raising=False)

        config = _resolve_config(parse("tools"))

        assert config.base_url == "http://env.example.com"

    def test_builtin_default(self, monkeypatch):
        """Test the well-known service URL when nothing is configured"""
        monkeypatch.delenv("MCP_SSE_URL", raising=False)
        monkeypatch.delenv("MCP_SSE_TIMEOUT", raising=False)

        assert _resolve_config(parse("tools")).base_url == DEFAULT_URL

    def test_flags_override_file(self, tmp_path):
        """Test --url and --timeout win over the config file"""
        config_file = tmp_path / "client.json"
        config_file.write_text(json.dumps({"base_url": "http://file.example.com", "timeout": 9}))

        config = _resolve_config(parse(
            "--config", str(config_file), "--timeout", "3", "tools", "-u", "http://flag.example.com",
        ))

        assert config.base_url == "http://flag.example.com"
        assert config.timeout == 3.0

    def test_file_used_without_flags(self, tmp_path):
        """Test config file values apply when no flags are given"""
        config_file = tmp_path / "client.json"
        config_file.write_text(json.dumps({"base_url": "http://file.example.com", "timeout": 9}))

        config = _resolve_config(parse("--config", str(config_file), "tools"))

        assert config.base_url == "http://file.example.com"
        assert config.timeout == 9.0


class TestCommands:
    """Test the subcommands against a mocked client"""

    @pytest.mark.asyncio
    async def test_tools(self, mock_client, capsys):
        """Test tools prints the tool list as JSON"""
        code = await run(parse("tools", "-u", "http://localhost:7911"))

        assert code == 0
        assert json.loads(capsys.readouterr().out) == {"tools": [{"name": "echo"}]}
        mock_client.connect.assert_awaited_once()
        mock_client.initialize.assert_awaited_once_with("mcp-sse-client", "1.0.0")
        mock_client.disconnect.assert_awaited_once()

        config = mock_client.cls.from_config.call_args.args[0]
        assert config.base_url == "http://localhost:7911"

    @pytest.mark.asyncio
    async def test_call(self, mock_client, capsys):
        """Test call passes the parsed arguments"""
        code = await run(parse("call", "-n", "echo", "-a", '{"text": "hi"}'))

        assert code == 0
        mock_client.call_tool.assert_awaited_once_with("echo", {"text": "hi"})
        assert json.loads(capsys.readouterr().out)["content"][0]["text"] == "hi"
        mock_client.disconnect.assert_awaited_once()

    @pytest.mark.asyncio
    async def test_call_invalid_args(self, mock_client, capsys):
        """Test malformed --args JSON is reported"""
        code = await run(parse("call", "-n", "echo", "-a", "not json"))

        assert code == 1
        assert "Invalid --args JSON" in capsys.readouterr().err
        mock_client.connect.assert_not_awaited()

    @pytest.mark.asyncio
    async def test_call_args_not_object(self, mock_client, capsys):
        """Test --args must be an object"""
        code = await run(parse("call", "-n", "echo", "-a", "[1, 2]"))

        assert code == 1
        assert "must be a JSON object" in capsys.readouterr().err

    @pytest.mark.asyncio
    async def test_connect(self, mock_client, capsys):
        """Test connect initializes, lists tools and waits"""
        with patch("mcp_sse_client.cli._wait_for_interrupt", AsyncMock()) as wait:
            code = await run(parse("connect", "-u", "http://localhost:7911"))

        assert code == 0
        wait.assert_awaited_once()
        out = capsys.readouterr().out
        assert "Connecting to http://localhost:7911" in out
        assert "Init result" in out
        assert '"echo"' in out
        mock_client.disconnect.assert_awaited_once()

        observers = mock_client.cls.from_config.call_args.kwargs
        assert set(observers) == {"on_connected", "on_disconnected", "on_error", "on_message"}

    @pytest.mark.asyncio
    async def test_connect_failure(self, mock_client, capsys):
        """Test a failed connect prints the error and disconnects"""
        mock_client.connect.side_effect = ConnectionTimeoutError("Connection timeout")

        code = await run(parse("tools"))

        assert code == 1
        assert "Error: Connection timeout" in capsys.readouterr().err
        mock_client.disconnect.assert_awaited_once()

    @pytest.mark.asyncio
    async def test_remote_error(self, mock_client, capsys):
        """Test a tool error is reported with a failing status"""
        from mcp.types import ErrorData

        mock_client.call_tool.side_effect = RemoteError(ErrorData(code=-32602, message="Unknown tool"))

        code = await run(parse("call", "-n", "missing"))

        assert code == 1
        assert "Error: Unknown tool" in capsys.readouterr().err

    def test_main_exit_status(self, mock_client, capsys):
        """Test main exits non-zero on failure"""
        mock_client.connect.side_effect = ConnectionTimeoutError("Connection timeout")

        with pytest.raises(SystemExit) as exc_info:
            main(["tools"])

        assert exc_info.value.code == 1

    def test_main_success(self, mock_client):
        """Test main exits zero on success"""
        with pytest.raises(SystemExit) as exc_info:
            main(["tools"])

        assert exc_info.value.code == 0
