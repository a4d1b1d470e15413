#!/usr/bin/env python3
"""
Tests for the terminal front end: prompts, the turn loop and CLI flags.
"""

import asyncio
import base64
import json
import os
import signal
import sys
from pathlib import Path
from unittest.mock import AsyncMock, Mock

import httpx
import pytest
import yaml

from src.llm.exceptions import FrameDecodeError, ProviderError
from src.llm.models import (
    FinalizedResponse,
    ImageBlock,
    TextBlock,
    TokenUsage,
    VersionPlacement,
)
from src.main import (
    InvalidOptionError,
    TerminalPrompter,
    chat_loop,
    main,
    print_payload,
    read_user_turn,
)

REPO_ROOT = Path(__file__).resolve().parent


def scripted(*answers: str) -> TerminalPrompter:
    """Prompter replaying ``answers``, then signalling end of input."""
    remaining = list(answers)

    def fake_input(prompt: str) -> str:
        if not remaining:
            raise EOFError
        return remaining.pop(0)

    return TerminalPrompter(fake_input)


def offline_http() -> httpx.AsyncClient:
    return httpx.AsyncClient(
        transport=httpx.MockTransport(lambda request: httpx.Response(500))
    )


def ok_response(text: str) -> FinalizedResponse:
    return FinalizedResponse(
        id="m1", text=text, stop_reason="end_turn", usage=TokenUsage(1, 1)
    )


class TestReadUserTurn:

    @pytest.mark.asyncio
    async def test_text_turn(self):
        async with offline_http() as http:
            turn = await read_user_turn(scripted("1", "  hello there  "), http)

        assert turn.role == "user"
        assert turn.content == (TextBlock(text="hello there"),)

    @pytest.mark.asyncio
    async def test_image_turn_with_two_images(self, tmp_path):
        first = tmp_path / "a.png"
        second = tmp_path / "b.jpg"
        first.write_bytes(b"png-bytes")
        second.write_bytes(b"jpg-bytes")

        async with offline_http() as http:
            turn = await read_user_turn(
                scripted("2", str(first), "yes", str(second), "no", "compare them"),
                http,
            )

        images = [b for b in turn.content if isinstance(b, ImageBlock)]
        assert [i.source.media_type for i in images] == ["image/png", "image/jpeg"]
        assert base64.b64decode(images[0].source.data) == b"png-bytes"
        assert turn.content[-1] == TextBlock(text="compare them")

    @pytest.mark.asyncio
    async def test_invalid_menu_option(self):
        async with offline_http() as http:
            with pytest.raises(InvalidOptionError, match="enter 1 or 2"):
                await read_user_turn(scripted("3"), http)

    @pytest.mark.asyncio
    async def test_invalid_more_images_answer(self, tmp_path):
        image = tmp_path / "a.png"
        image.write_bytes(b"x")
        async with offline_http() as http:
            with pytest.raises(InvalidOptionError, match="enter yes or no"):
                await read_user_turn(scripted("2", str(image), "maybe"), http)


class TestChatLoop:

    @pytest.mark.asyncio
    async def test_runs_until_end_of_input(self, capsys):
        service = Mock()

        async def fake_send(turn, on_text):
            on_text("Hi")
            on_text("!")
            return ok_response("Hi!")

        service.send = AsyncMock(side_effect=fake_send)

        async with offline_http() as http:
            code = await chat_loop(
                service, scripted("1", "hello", "1", "again"), http,
                exit_on_stream_error=True,
            )

        assert code == 0
        assert service.send.await_count == 2
        assert capsys.readouterr().out.count("[Assistant]: Hi!") == 2

    @pytest.mark.asyncio
    async def test_stream_error_ends_session(self):
        service = Mock()
        service.send = AsyncMock(side_effect=FrameDecodeError("bad frame"))

        async with offline_http() as http:
            code = await chat_loop(
                service, scripted("1", "hello", "1", "again"), http,
                exit_on_stream_error=True,
            )

        assert code == 1
        assert service.send.await_count == 1

    @pytest.mark.asyncio
    async def test_stream_error_can_continue(self):
        service = Mock()
        service.send = AsyncMock(
            side_effect=[FrameDecodeError("bad frame"), ok_response("ok")]
        )

        async with offline_http() as http:
            code = await chat_loop(
                service, scripted("1", "hello", "1", "again"), http,
                exit_on_stream_error=False,
            )

        assert code == 0
        assert service.send.await_count == 2

    @pytest.mark.asyncio
    async def test_unreadable_image_prompts_again(self, tmp_path, capsys):
        service = Mock()
        service.send = AsyncMock(return_value=ok_response("ok"))
        missing = tmp_path / "missing.png"

        async with offline_http() as http:
            code = await chat_loop(
                service, scripted("2", str(missing), "1", "hello"), http,
                exit_on_stream_error=True,
            )

        assert code == 0
        assert service.send.await_count == 1
        sent_turn = service.send.await_args.args[0]
        assert sent_turn.content == (TextBlock(text="hello"),)
        err = capsys.readouterr().err
        assert "missing.png" in err
        assert "start over again" in err

    @pytest.mark.asyncio
    async def test_without_streaming_prints_whole_reply(self, capsys):
        service = Mock()
        service.complete = AsyncMock(return_value=ok_response("All at once."))
        service.send = AsyncMock()

        async with offline_http() as http:
            code = await chat_loop(
                service, scripted("1", "hello"), http,
                exit_on_stream_error=True, stream=False,
            )

        assert code == 0
        service.send.assert_not_awaited()
        assert "[Assistant]: All at once." in capsys.readouterr().out

    @pytest.mark.asyncio
    async def test_failed_reply_reported_once_to_user(self, capsys):
        service = Mock()
        service.complete = AsyncMock(side_effect=ProviderError("overloaded"))

        async with offline_http() as http:
            code = await chat_loop(
                service, scripted("1", "hello"), http,
                exit_on_stream_error=True, stream=False,
            )

        assert code == 1
        assert capsys.readouterr().err.count("overloaded") == 1

    @pytest.mark.asyncio
    async def test_invalid_option_prompts_again(self, capsys):
        service = Mock()
        service.send = AsyncMock(return_value=ok_response("ok"))

        async with offline_http() as http:
            code = await chat_loop(
                service, scripted("9", "1", "hello"), http,
                exit_on_stream_error=True,
            )

        assert code == 0
        assert service.send.await_count == 1
        assert "start over again" in capsys.readouterr().err


class TestCli:

    def test_print_payload(self, capsys):
        print_payload({"max_tokens": 5})
        out = capsys.readouterr().out
        assert out.startswith("[request payload] ")
        assert json.loads(out.split(" ", 2)[2]) == {"max_tokens": 5}

    @pytest.fixture
    def captured_loop(self, monkeypatch):
        captured = {}

        async def fake_chat_loop(
            service, prompter, http_client, *, exit_on_stream_error, stream
        ):
            captured["service"] = service
            captured["exit_on_stream_error"] = exit_on_stream_error
            captured["stream"] = stream
            return 0

        monkeypatch.setenv("ANTHROPIC_API_KEY", "sk-test")
        monkeypatch.setattr("src.config.load_dotenv", lambda: None)
        monkeypatch.setattr("src.main.chat_loop", fake_chat_loop)
        return captured

    @pytest.mark.asyncio
    async def test_verbose_flag_wires_payload_printer(self, captured_loop):
        assert await main(["-verbose"]) == 0
        assert captured_loop["service"].on_payload is print_payload
        assert captured_loop["exit_on_stream_error"] is True
        assert captured_loop["stream"] is True

        assert await main([]) == 0
        assert captured_loop["service"].on_payload is None

    @pytest.mark.asyncio
    async def test_no_stream_flag(self, captured_loop):
        assert await main(["-no-stream"]) == 0
        assert captured_loop["stream"] is False

    @pytest.mark.asyncio
    async def test_config_flag_loads_given_file(self, captured_loop, tmp_path):
        path = tmp_path / "chat.yaml"
        path.write_text(yaml.safe_dump({
            "llm": {
                "active": "anthropic",
                "providers": {
                    "anthropic": {
                        "base_url": "https://gateway.test/v1",
                        "model": "custom-model",
                        "version_placement": "body",
                        "request": {
                            "anthropic_version": "bedrock-2023-05-31",
                            "max_tokens": 300,
                        },
                        "http_client": {
                            "connect_timeout": 1.0,
                            "read_timeout": 1.0,
                            "write_timeout": 1.0,
                            "pool_timeout": 1.0,
                        },
                    }
                },
            },
            "chat": {"exit_on_stream_error": False},
        }))

        assert await main(["-config", str(path)]) == 0

        service = captured_loop["service"]
        assert captured_loop["exit_on_stream_error"] is False
        assert service.llm_client.provider.model == "custom-model"
        assert service.llm_client.provider.version_placement is VersionPlacement.BODY
        assert service.request_defaults.max_tokens == 300


@pytest.mark.skipif(sys.platform == "win32", reason="needs POSIX signals")
class TestInterrupt:

    @pytest.mark.asyncio
    async def test_ctrl_c_at_prompt_exits_promptly(self):
        proc = await asyncio.create_subprocess_exec(
            sys.executable, "-m", "src.main",
            cwd=REPO_ROOT,
            env={**os.environ, "ANTHROPIC_API_KEY": "sk-test"},
            stdin=asyncio.subprocess.PIPE,
            stdout=asyncio.subprocess.PIPE,
            stderr=asyncio.subprocess.PIPE,
        )
        try:
            prompt = await asyncio.wait_for(
                proc.stdout.readuntil(b"(enter 2): "), timeout=30
            )
            assert b"Choose your message type" in prompt

            proc.send_signal(signal.SIGINT)
            code = await asyncio.wait_for(proc.wait(), timeout=10)
        finally:
            if proc.returncode is None:
                proc.kill()
                await proc.wait()

        assert code == 130
