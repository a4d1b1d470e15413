"""
Main module for the streaming chat client.
"""

from __future__ import annotations

import argparse
import asyncio
import json
import logging
import sys
import threading
from collections.abc import Callable
from typing import Any

import httpx

from src.chat_service import ChatService, RequestDefaults
from src.config import Configuration
from src.llm.client import StreamingLLMClient
from src.llm.exceptions import ImageLoadError, LLMError
from src.llm.media import load_image_block
from src.llm.models import ImageBlock, TextBlock, Turn
from src.logging_utils import operation_context

TEXT_OPTION = "1"
IMAGE_OPTION = "2"

InputFunc = Callable[[str], str]


class InvalidOptionError(ValueError):
    """The user picked a menu option that does not exist."""
    pass


class TerminalPrompter:
    """
    Terminal prompts read on a daemon thread.

    A pending read never keeps the process alive, so an interrupt while the
    user is at a prompt ends the session immediately.
    """

    def __init__(self, input_func: InputFunc = input) -> None:
        self._input = input_func

    async def ask(self, prompt: str) -> str:
        loop = asyncio.get_running_loop()
        answer: asyncio.Future[str] = loop.create_future()

        def read() -> None:
            try:
                text = self._input(prompt)
            except Exception as e:
                loop.call_soon_threadsafe(_settle, answer, None, e)
            else:
                loop.call_soon_threadsafe(_settle, answer, text, None)

        threading.Thread(target=read, name="prompt-reader", daemon=True).start()
        return (await answer).strip()


def _settle(
    answer: asyncio.Future[str], text: str | None, error: Exception | None
) -> None:
    if answer.done():
        return
    if error is not None:
        answer.set_exception(error)
    else:
        answer.set_result(text)


async def read_user_turn(
    prompter: TerminalPrompter, http_client: httpx.AsyncClient
) -> Turn:
    """
    Ask for the next user turn: either plain text, or one or more images
    followed by a question about them.

    Raises:
        InvalidOptionError: If an answer is not one of the offered options.
        ImageLoadError: If an image source cannot be read.
    """
    choice = await prompter.ask(
        "\nChoose your message type - Text (enter 1) or Image (enter 2): "
    )

    if choice == TEXT_OPTION:
        text = await prompter.ask("\nEnter your message: ")
        return Turn(role="user", content=(TextBlock(text=text),))

    if choice != IMAGE_OPTION:
        raise InvalidOptionError("invalid option. enter 1 or 2.")

    blocks: list[TextBlock | ImageBlock] = []
    while True:
        source = await prompter.ask(
            "\nEnter the image source (local path or url): "
        )
        blocks.append(await load_image_block(source, http_client))

        more = await prompter.ask(
            "\nWould you like to add more images? enter yes or no: "
        )
        if more == "yes":
            continue
        if more == "no":
            break
        raise InvalidOptionError("invalid option. enter yes or no.")

    question = await prompter.ask(
        "\nWhat would you like to ask about the image(s)? : "
    )
    blocks.append(TextBlock(text=question))
    return Turn(role="user", content=tuple(blocks))


def print_fragment(text: str) -> None:
    print(text, end="", flush=True)


def print_payload(payload: dict[str, Any]) -> None:
    print("[request payload]", json.dumps(payload))


def build_request_defaults(config: Configuration) -> RequestDefaults:
    return RequestDefaults(**config.get_request_config())


async def chat_loop(
    service: ChatService,
    prompter: TerminalPrompter,
    http_client: httpx.AsyncClient,
    *,
    exit_on_stream_error: bool,
    stream: bool = True,
) -> int:
    """
    Run turns until end of input. Returns the process exit code.

    With ``stream`` off each reply is requested in one piece and printed
    once it has fully arrived.
    """
    while True:
        try:
            turn = await read_user_turn(prompter, http_client)
        except EOFError:
            return 0
        except (InvalidOptionError, ImageLoadError) as e:
            print(f"\n{e} start over again", file=sys.stderr)
            continue

        print("[Assistant]: ", end="", flush=True)
        try:
            if stream:
                await service.send(turn, print_fragment)
            else:
                response = await service.complete(turn)
                print_fragment(response.text)
        except LLMError as e:
            # already logged by the service
            print()
            kind = "streaming output" if stream else "response"
            print(f"{kind} processing error: {e}", file=sys.stderr)
            if exit_on_stream_error:
                return 1
            continue
        print()


async def main(argv: list[str] | None = None) -> int:
    """Main entry point - interactive terminal chat."""
    parser = argparse.ArgumentParser(
        description="Chat with a hosted LLM, streaming replies as they arrive"
    )
    parser.add_argument(
        "-verbose", "--verbose",
        action="store_true",
        help="print the request payload sent to the LLM",
    )
    parser.add_argument(
        "-config", "--config",
        default=None,
        help="path to a YAML configuration file",
    )
    parser.add_argument(
        "-no-stream", "--no-stream",
        dest="stream",
        action="store_false",
        help="wait for each complete reply instead of streaming it",
    )
    args = parser.parse_args(argv)

    config = Configuration(args.config)
    logging.basicConfig(
        level=config.get_log_level(),
        format="%(asctime)s - %(levelname)s - %(message)s",
        stream=sys.stderr,
    )

    provider = config.get_provider_config()
    chat_config = config.get_chat_config()

    async with (
        StreamingLLMClient(provider) as llm_client,
        httpx.AsyncClient(timeout=provider.read_timeout) as media_client,
    ):
        service = ChatService(
            llm_client,
            build_request_defaults(config),
            on_payload=print_payload if args.verbose else None,
        )
        async with operation_context(
            "chat_session",
            context={"provider": provider.name, "model": provider.model},
        ):
            return await chat_loop(
                service,
                TerminalPrompter(),
                media_client,
                exit_on_stream_error=bool(chat_config["exit_on_stream_error"]),
                stream=args.stream,
            )


def run() -> None:
    try:
        sys.exit(asyncio.run(main()))
    except KeyboardInterrupt:
        logging.info("Keyboard interrupt received, shutting down...")
        sys.exit(130)


if __name__ == "__main__":
    run()
