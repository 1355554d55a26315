"""Terminal entry point for the Rev voice client."""

from __future__ import annotations

import asyncio
import sys
from typing import Optional

import typer

from .audio.console import ConsoleMicrophone, ConsoleRecognizer, ConsoleSynthesizer
from .config.settings import AppSettings
from .config.store import load_settings, save_settings
from .runtime.controller import ConversationController
from .runtime.machine import MachinePolicy, Notify
from .services.api import RelayAPI, RelayAPIError
from .services.channel import RelayChannel
from .state.app_state import ConversationContext, VoiceState

cli = typer.Typer(name="rev-voice", help="Talk to Rev from the terminal")


@cli.callback()
def _main() -> None:
    """Rev voice client."""


HELP_TEXT = (
    "Commands: /start to talk, /stop to end the conversation, "
    "/text <message> to type a message, /quit to leave. "
    "While listening, each line you type is taken as what you said."
)

_STATUS_TEXT = {
    VoiceState.CONNECTING: "Connecting...",
    VoiceState.LISTENING: "Listening... (/stop to end)",
    VoiceState.PROCESSING: "Processing...",
    VoiceState.SPEAKING: "Rev is speaking...",
    VoiceState.ERROR: "Error - Please try again",
    VoiceState.IDLE: "Type /start to talk to Rev",
}


def status_text(state: VoiceState) -> str:
    return _STATUS_TEXT[state]


def handle_line(controller: ConversationController, recognizer: ConsoleRecognizer, line: str) -> bool:
    """Route one input line; return False when the user asked to quit."""
    stripped = line.strip()
    if stripped == "/quit":
        return False
    if stripped == "/start":
        controller.start()
    elif stripped == "/stop":
        controller.stop()
    elif stripped == "/text" or stripped.startswith("/text "):
        controller.submit_text(stripped[len("/text") :])
    elif stripped == "/help":
        typer.echo(HELP_TEXT)
    elif not recognizer.feed(line.rstrip("\n")):
        typer.echo(status_text(controller.voice_state))
    return True


def _print_notice(notice: Notify) -> None:
    typer.secho(f"[{notice.title}] {notice.description}", fg="red" if notice.destructive else "green")


async def _ensure_api_key(api: RelayAPI, api_key: Optional[str]) -> bool:
    status = await api.api_status()
    if status.configured and not api_key:
        return True
    if not api_key:
        typer.echo(status.message)
        loop = asyncio.get_running_loop()
        api_key = await loop.run_in_executor(
            None, lambda: typer.prompt("Gemini API key", hide_input=True)
        )
    try:
        message = await api.set_api_key(api_key or "")
    except RelayAPIError as exc:
        typer.secho(f"[Configuration Failed] {exc}", fg="red")
        return False
    typer.secho(message, fg="green")
    return True


async def talk_session(settings: AppSettings, api_key: Optional[str] = None) -> int:
    api = RelayAPI(settings)
    try:
        if not await _ensure_api_key(api, api_key):
            return 1
    except RelayAPIError as exc:
        typer.secho(f"[Connection Error] {exc}", fg="red")
        return 1
    finally:
        await api.close()

    recognizer = ConsoleRecognizer()
    synthesizer = ConsoleSynthesizer(typer.echo, seconds_per_word=settings.conversation.seconds_per_word)
    controller = ConversationController(
        recognizer,
        synthesizer,
        RelayChannel(settings.server),
        microphone=ConsoleMicrophone(),
        policy=MachinePolicy(
            response_timeout=settings.conversation.response_timeout,
            recovery_delay=settings.conversation.recovery_delay,
        ),
    )
    controller.set_notify_callback(_print_notice)

    last_state: list[VoiceState] = [controller.voice_state]

    def _on_change(ctx: ConversationContext) -> None:
        if ctx.state != last_state[0]:
            last_state[0] = ctx.state
            typer.secho(status_text(ctx.state), dim=True)

    controller.set_change_callback(_on_change)
    await controller.connect()
    if not controller.context.connected:
        return 1

    typer.echo(HELP_TEXT)
    loop = asyncio.get_running_loop()
    try:
        while True:
            line = await loop.run_in_executor(None, sys.stdin.readline)
            if not line:
                break
            if not handle_line(controller, recognizer, line):
                break
    finally:
        await controller.close()
    return 0


@cli.command()
def talk(
    url: Optional[str] = typer.Option(None, "--url", help="Relay base URL"),
    api_key: Optional[str] = typer.Option(None, "--api-key", help="Gemini API key to send to the relay"),
    timeout: Optional[float] = typer.Option(None, "--timeout", help="Seconds to wait for a reply"),
    save: bool = typer.Option(False, "--save", help="Remember --url/--timeout"),
) -> None:
    """Open a conversation with Rev."""
    settings = load_settings()
    if url:
        settings.server.base_url = url
    if timeout:
        settings.conversation.response_timeout = timeout
    if save:
        save_settings(settings)
    raise typer.Exit(code=asyncio.run(talk_session(settings, api_key)))


def run() -> None:
    """Start the terminal client."""
    cli()


if __name__ == "__main__":
    run()
