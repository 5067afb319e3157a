#!/usr/bin/env python3
"""
Briefrr Textual CLI - the summary drawer in a terminal
"""

import argparse
import asyncio
import getpass
import logging
import math
import sys
from pathlib import Path
from typing import List, Optional

from textual.app import App, ComposeResult
from textual.logging import TextualHandler
from textual.containers import Container, Horizontal, ScrollableContainer
from textual.widgets import Header, Footer, Input, Static, Button, Label
from textual.screen import Screen
from rich.console import Console
from rich.markdown import Markdown
from rich.table import Table

from .. import __version__
from ..briefrr import Briefrr
from ..core.utils import configure_logging, format_time_remaining, truncate_title
from ..exceptions import BriefrrError
from ..models.session import ClassifiedFailure, Mode
from ..session.content import ContentProvider, TextFileContentProvider
from ..session.controller import SessionController
from ..session.view import SessionView, QUERY_PROMPT
from ..utils.async_helpers import sync_wrapper
from .config import ConfigManager, get_config_manager
from .styles import SETUP_SCREEN_CSS, DRAWER_CSS

STREAMING_CURSOR = " ▌"


class SetupScreen(Screen):
    """First-time setup screen for API key configuration"""

    CSS = SETUP_SCREEN_CSS

    def __init__(self, briefrr: Briefrr):
        super().__init__()
        self.briefrr = briefrr

    def compose(self) -> ComposeResult:
        with Container(id="setup-container"):
            yield Static("[bold]⚡ Welcome to Briefrr![/bold]\n", classes="title")
            yield Static("Briefrr needs a Gemini API key to summarize pages.\n")
            yield Static("Get a free key from: [link]https://aistudio.google.com/app/apikey[/link]\n")
            yield Input(placeholder="Enter your Gemini API key...", id="api-input", password=True)
            yield Label("", id="setup-error")
            with Horizontal(id="button-container"):
                yield Button("Save & Continue", variant="primary", id="save-btn")
                yield Button("Exit", variant="error", id="exit-btn")

    async def on_input_submitted(self, event: Input.Submitted) -> None:
        await self.save_key()

    async def on_button_pressed(self, event: Button.Pressed) -> None:
        if event.button.id == "save-btn":
            await self.save_key()
        elif event.button.id == "exit-btn":
            self.app.exit()

    async def save_key(self) -> None:
        api_input = self.query_one("#api-input", Input)
        error_label = self.query_one("#setup-error", Label)
        save_btn = self.query_one("#save-btn", Button)

        api_key = api_input.value.strip()
        if not api_key:
            error_label.update("Please enter an API key")
            return

        save_btn.disabled = True
        save_btn.label = "Validating..."
        result = await self.briefrr.set_api_key(api_key)
        save_btn.disabled = False
        save_btn.label = "Save & Continue"

        if not result.valid:
            error_label.update(Briefrr.describe_key_error(result.error))
            return

        self.dismiss(True)


class DrawerView(SessionView):
    """Pushes session state into the drawer widgets"""

    def __init__(self, app: 'BriefrrDrawer'):
        self.app = app

    def show_mode(self, mode: Mode) -> None:
        self.app.set_active_mode(mode)

    def show_query_prompt(self) -> None:
        self.app.set_loading(QUERY_PROMPT)
        self.app.focus_query()

    def show_loading(self, message: str) -> None:
        self.app.set_loading(message)

    def render(self, text: str, in_progress: bool) -> None:
        self.app.set_content(text + STREAMING_CURSOR if in_progress else text)

    def show_error(self, failure: ClassifiedFailure) -> None:
        self.app.show_failure(failure)

    def update_countdown(self, remaining_ms: int) -> None:
        self.app.set_countdown(remaining_ms)


class BriefrrDrawer(App):
    """Summary drawer for one page"""

    CSS = DRAWER_CSS
    TITLE = "Briefrr"

    BINDINGS = [
        ("ctrl+q", "quit", "Quit"),
        ("escape", "close_drawer", "Close"),
        ("b", "mode('brief')", "Brief"),
        ("e", "mode('explain')", "Explain"),
        ("s", "mode('query')", "Search"),
        ("r", "retry", "Retry"),
    ]

    def __init__(
        self,
        content_provider: ContentProvider,
        page_title: str,
        initial_mode: Mode = Mode.BRIEF,
        question: str = "",
        config_manager: Optional[ConfigManager] = None
    ):
        super().__init__()
        self.content_provider = content_provider
        self.page_title = page_title
        self.initial_mode = initial_mode
        self.question = question
        self.config_manager = config_manager or get_config_manager()
        self.briefrr: Optional[Briefrr] = None
        self.controller: Optional[SessionController] = None

    def compose(self) -> ComposeResult:
        """Create the drawer layout"""
        yield Header()

        with Container(id="drawer"):
            yield Label(truncate_title(self.page_title), id="page-title")

            with Horizontal(id="mode-bar"):
                for mode in Mode:
                    yield Button(f"{mode.icon} {mode.label}", id=f"mode-{mode.value}")

            with Container(id="query-container"):
                yield Input(placeholder="Ask anything about this page...", id="query-input")

            with ScrollableContainer(id="content-scroll"):
                yield Static("", id="loading")
                yield Static("", id="content")

                with Container(id="error-container"):
                    yield Static("", id="error-message")
                    yield Label("", id="countdown")
                    yield Button("Try Again", variant="primary", id="retry-btn")

        yield Footer()

    async def on_mount(self) -> None:
        self.briefrr = Briefrr(config=self.config_manager.build_briefrr_config())
        if await self.briefrr.ensure_api_key():
            self.start_session()
        else:
            await self.push_screen(SetupScreen(self.briefrr), self.on_setup_done)

    def on_setup_done(self, saved: bool) -> None:
        if saved:
            self.start_session()

    def start_session(self) -> None:
        self.controller = self.briefrr.create_controller(self.content_provider, DrawerView(self))
        if self.question:
            self.controller.submit_query(self.question)
        else:
            self.controller.select_mode(self.initial_mode)

    async def on_unmount(self) -> None:
        if self.controller is not None:
            self.controller.close()
        if self.briefrr is not None:
            await self.briefrr.aclose()

    # Widget updates driven by DrawerView

    def set_active_mode(self, mode: Mode) -> None:
        for candidate in Mode:
            button = self.query_one(f"#mode-{candidate.value}", Button)
            button.set_class(candidate == mode, "active")
        self.query_one("#query-container").set_class(mode == Mode.QUERY, "visible")
        self.sub_title = f"{mode.icon} {mode.label}"

    def focus_query(self) -> None:
        self.query_one("#query-input", Input).focus()

    def set_loading(self, message: str) -> None:
        self._hide_error()
        self.query_one("#content", Static).update("")
        loading = self.query_one("#loading", Static)
        loading.update(f"[dim]{message}[/dim]")
        loading.display = True

    def set_content(self, text: str) -> None:
        self._hide_error()
        self.query_one("#loading", Static).display = False
        self.query_one("#content", Static).update(Markdown(text))

    def show_failure(self, failure: ClassifiedFailure) -> None:
        self.query_one("#loading", Static).display = False
        self.query_one("#error-message", Static).update(f"⚠️ {failure.message}")
        self.query_one("#retry-btn", Button).set_class(failure.show_retry_button, "visible")
        self.set_countdown(failure.retry_after_ms)
        self.query_one("#error-container").add_class("visible")

    def set_countdown(self, remaining_ms: int) -> None:
        countdown = self.query_one("#countdown", Label)
        if remaining_ms <= 0:
            countdown.update("")
        else:
            countdown.update(f"Retrying in {math.ceil(remaining_ms / 1000)}s")

    def _hide_error(self) -> None:
        self.query_one("#error-container").remove_class("visible")

    # Events and actions

    async def on_button_pressed(self, event: Button.Pressed) -> None:
        if self.controller is None:
            return
        button_id = event.button.id or ""
        if button_id == "retry-btn":
            self.controller.retry()
        elif button_id.startswith("mode-"):
            self.controller.select_mode(Mode(button_id[len("mode-"):]))

    async def on_input_submitted(self, event: Input.Submitted) -> None:
        if self.controller is not None and event.input.id == "query-input":
            self.controller.submit_query(event.value)

    def action_mode(self, mode: str) -> None:
        if self.controller is not None:
            self.controller.select_mode(Mode(mode))

    def action_retry(self) -> None:
        if self.controller is not None and self.controller.state.failure is not None:
            self.controller.retry()

    def action_close_drawer(self) -> None:
        if self.controller is not None:
            self.controller.close()
        self.exit()


class PlainView(SessionView):
    """Streams the response straight to the terminal"""

    def __init__(self, console: Console):
        self.console = console
        self.printed = 0

    def show_loading(self, message: str) -> None:
        self.console.print(f"[dim]{message}[/dim]", highlight=False)

    def render(self, text: str, in_progress: bool) -> None:
        # Full text is pushed every time, only print what is new
        delta = text[self.printed:]
        self.printed = len(text)
        self.console.print(delta, end="", markup=False, highlight=False)
        if not in_progress:
            self.console.print()


async def read_plain(
    briefrr: Briefrr,
    content_provider: ContentProvider,
    mode: Mode,
    question: str,
    console: Console
) -> int:
    """Run one mode without the TUI"""
    try:
        await briefrr.ensure_api_key()
        await briefrr.generate(content_provider, mode, question, PlainView(console))
    except (BriefrrError, ValueError) as e:
        console.print(f"[red]❌ {e}[/red]")
        return 1
    finally:
        await briefrr.aclose()
    return 0


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="briefrr",
        description="AI page summaries powered by Gemini"
    )
    parser.add_argument("--version", action="version", version=f"%(prog)s {__version__}")
    parser.add_argument("--log-level", help="Logging level (default from ~/.briefrr/config.json)")
    commands = parser.add_subparsers(dest="command")

    read = commands.add_parser("read", help="Summarize a saved page")
    read.add_argument("file", help="Text file with the page content")
    read.add_argument("--mode", choices=[m.value for m in Mode], help="Mode to start in")
    read.add_argument("--question", "-q", default="", help="Question for query mode")
    read.add_argument("--url", help="Original page URL, shown as the site name")
    read.add_argument("--plain", action="store_true", help="Print the response instead of opening the drawer")

    key = commands.add_parser("key", help="Manage the Gemini API key")
    key_commands = key.add_subparsers(dest="key_command", required=True)
    key_set = key_commands.add_parser("set", help="Validate and save a key")
    key_set.add_argument("api_key", nargs="?", help="Key to save (prompted if omitted)")
    key_set.add_argument("--no-validate", action="store_true", help="Save without checking upstream")
    key_commands.add_parser("clear", help="Remove the saved key")
    key_commands.add_parser("show", help="Show the saved key, masked")

    commands.add_parser("status", help="Show rate limit and storage state")
    return parser


def run_key_command(args: argparse.Namespace, briefrr: Briefrr, console: Console) -> int:
    if args.key_command == "show":
        console.print(f"API key: {sync_wrapper(briefrr.get_masked_api_key())}")
        return 0

    if args.key_command == "clear":
        briefrr.clear_api_key_sync()
        console.print("✅ API key removed")
        return 0

    api_key = args.api_key or getpass.getpass("Gemini API key: ")
    result = briefrr.set_api_key_sync(api_key, validate=not args.no_validate)
    if not result.valid:
        console.print(f"[red]❌ {Briefrr.describe_key_error(result.error)}[/red]")
        return 1
    console.print("✅ API key saved")
    return 0


def run_status(briefrr: Briefrr, console: Console) -> int:
    stats = briefrr.get_stats_sync()
    rate_limit = stats['rate_limit']

    table = Table(title="Briefrr status", show_header=False)
    table.add_column("Setting", style="bold")
    table.add_column("Value")
    table.add_row("Model", stats['config']['model'])
    table.add_row("API key", stats['api_key'])
    table.add_row("Storage", stats['storage']['backend'])

    remaining = rate_limit['remaining_cooldown_ms']
    table.add_row("Cooldown", format_time_remaining(remaining) if remaining else "ready")
    backoff = rate_limit['backoff_delay_ms']
    table.add_row("Backoff", format_time_remaining(backoff) if backoff else "none")

    console.print(table)
    return 0


def log_handler_for(args: argparse.Namespace) -> Optional[logging.Handler]:
    """Drawer runs log through Textual; plain output and other commands log to stderr"""
    if args.command == "read" and not args.plain:
        return TextualHandler()
    return None


def main(argv: Optional[List[str]] = None) -> int:
    """Main entry point for the Briefrr CLI"""
    parser = build_parser()
    args = parser.parse_args(argv)
    console = Console()

    config_manager = get_config_manager()
    configure_logging(args.log_level or config_manager.config.log_level, log_handler_for(args))

    if args.command == "read":
        path = Path(args.file)
        content_provider = TextFileContentProvider(path, source_url=args.url)
        mode = Mode(args.mode) if args.mode else config_manager.get_default_mode()
        if args.question:
            mode = Mode.QUERY

        if args.plain:
            briefrr = Briefrr(config=config_manager.build_briefrr_config())
            return asyncio.run(read_plain(briefrr, content_provider, mode, args.question, console))

        BriefrrDrawer(
            content_provider,
            page_title=path.stem,
            initial_mode=mode,
            question=args.question,
            config_manager=config_manager
        ).run()
        return 0

    if args.command == "key":
        return run_key_command(args, Briefrr(config=config_manager.build_briefrr_config()), console)

    if args.command == "status":
        return run_status(Briefrr(config=config_manager.build_briefrr_config()), console)

    parser.print_help()
    return 0


if __name__ == "__main__":
    sys.exit(main())
