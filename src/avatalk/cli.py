"""Interactive console for driving a session controller.

Lines typed on stdin are mapped onto controller intents. With the mock
transport, ``/avatar`` and ``/hear`` inject avatar speech and user speech as
if they came from the avatar service.
"""
import argparse
import asyncio
import signal
import sys
from typing import Optional

from avatalk.config import get_config
from avatalk.core.controller import SessionController, create_controller
from avatalk.logging_config import setup_logger
from avatalk.models import Mode
from avatalk.perception.microphone import StaticProbe
from avatalk.transport.base import MockTransport, TransportEvent
from avatalk.transport.token import StaticTokenProvider

logger = setup_logger("avatalk.cli")

HELP = """Commands:
  /start              start a session
  /end                end the session
  /mode text|voice    switch interaction mode
  /mic                toggle the microphone gate
  /interrupt          interrupt the avatar
  /avatar <text>      inject an avatar speech fragment (mock transport)
  /hear <text>        inject recognised user speech (mock transport)
  /clear              end the session and clear the transcript
  /quit               leave
  <text>              send typed text"""


class Console:
    """Line-oriented front end for a SessionController."""

    def __init__(self, controller: SessionController):
        self.controller = controller
        self._running = False

    async def run(self) -> None:
        """Read commands until /quit or end of input."""
        self._running = True
        print(HELP)
        loop = asyncio.get_running_loop()

        try:
            while self._running:
                line = await loop.run_in_executor(None, sys.stdin.readline)
                if not line:
                    break
                await self.handle(line.strip())
                self.render()
        finally:
            await self.controller.close()

    async def handle(self, line: str) -> None:
        """Execute one console line."""
        if not line:
            return

        command, _, argument = line.partition(" ")
        controller = self.controller

        if command == "/start":
            await controller.start()
        elif command == "/end":
            await controller.end()
        elif command == "/mode":
            try:
                mode = Mode(f"{argument.strip()}_mode")
            except ValueError:
                print("usage: /mode text|voice")
                return
            await controller.set_mode(mode)
        elif command == "/mic":
            await controller.toggle_microphone()
        elif command == "/interrupt":
            await controller.interrupt()
        elif command in ("/avatar", "/hear"):
            await self._inject(command, argument)
        elif command == "/clear":
            await controller.clear()
        elif command == "/quit":
            self._running = False
        elif command.startswith("/"):
            print(HELP)
        else:
            await controller.send_text(line)

    async def _inject(self, command: str, text: str) -> None:
        transport = self.controller.transport
        if not isinstance(transport, MockTransport):
            print("Injection needs a running session on the mock transport")
            return
        kind = TransportEvent.AVATAR_FRAGMENT if command == "/avatar" else TransportEvent.USER_FRAGMENT
        await transport.inject(kind, message=text)

    def render(self) -> None:
        """Print the transcript and status line."""
        controller = self.controller
        for message in controller.messages:
            print(f"  {message.sender.value:>6}: {message.text}")
        status = (
            f"[{controller.state.value}] mode={controller.mode.value} "
            f"mic={'on' if controller.mic_enabled else 'off'} "
            f"session={controller.session_id or '-'}"
        )
        print(status)
        if controller.toast:
            print(f"  ({controller.toast})")
        if controller.debug:
            print(f"  debug: {controller.debug}")


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(prog="avatalk", description="Avatar session console")
    parser.add_argument("--token", help="use a fixed access token instead of the token endpoint")
    parser.add_argument(
        "--skip-mic-check",
        action="store_true",
        help="do not probe the microphone before starting",
    )
    return parser


async def run_cli(token: Optional[str] = None, skip_mic_check: bool = False) -> None:
    """Run the console application."""
    controller = create_controller(
        get_config(),
        token_provider=StaticTokenProvider(token) if token else None,
        permission_probe=StaticProbe(granted=True) if skip_mic_check else None,
    )
    console = Console(controller)
    await console.run()


def main():
    """CLI entry point."""
    args = build_parser().parse_args()

    # Handle Ctrl+C
    def signal_handler(sig, frame):
        logger.info("\nReceived interrupt signal")
        sys.exit(0)

    signal.signal(signal.SIGINT, signal_handler)

    try:
        asyncio.run(run_cli(token=args.token, skip_mic_check=args.skip_mic_check))
    except KeyboardInterrupt:
        logger.info("\nInterrupted by user")


if __name__ == "__main__":
    main()
