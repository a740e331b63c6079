"""
Interactive CLI loop for raglite_chat.
Handles slash commands and streams answers into a live transcript.
"""
import asyncio
import logging
from pathlib import Path
from typing import AsyncIterator, Awaitable, Callable, Dict, Optional

from prompt_toolkit import PromptSession
from prompt_toolkit.history import InMemoryHistory
from rich.live import Live

from .api.client import RAGApiClient
from .api.models import StreamRequest
from .chat.service import ChatService
from .chat.store import ChatStore
from .config import AppConfig, ConfigManager
from .constants import HELP_TEXT, SLASH_PREFIX
from .errors import StreamBusyError
from .rich_ui.renderer import ChatRenderer


logger = logging.getLogger(__name__)


PROMPT_TEXT = "> "


async def file_chunks(path: Path, chunk_size: int = 64) -> AsyncIterator[bytes]:
    """
    Yield a recorded event stream from disk in fixed-size byte chunks.

    Small chunk sizes exercise frame and character boundaries the same way a
    slow network does.
    """
    data = path.read_bytes()
    for start in range(0, len(data), max(1, chunk_size)):
        yield data[start:start + chunk_size]
        await asyncio.sleep(0)


class ChatCLI:
    """
    Main CLI class for raglite_chat.

    Reads input with prompt_toolkit, dispatches slash commands, and renders
    streaming answers with a rich Live display fed by store change
    notifications.
    """

    def __init__(
        self,
        config: ConfigManager,
        renderer: Optional[ChatRenderer] = None,
        client: Optional[RAGApiClient] = None,
        service: Optional[ChatService] = None,
    ) -> None:
        self._config = config
        self._renderer = renderer or ChatRenderer(
            show_thinking=config.ui.show_thinking,
            show_metrics=config.ui.show_metrics,
            markdown_rendering=config.ui.markdown_rendering,
        )
        if service is None:
            store = ChatStore(max_debug_events=config.chat.max_debug_events)
            client = client or RAGApiClient(
                base_url=config.api.base_url,
                timeout=config.api.timeout,
                stream_timeout=config.api.stream_timeout,
            )
            service = ChatService(store, client, config.config)
        self._service = service
        self._store = service.store
        self._running = False
        self._commands: Dict[str, Callable[[str], Awaitable[None]]] = {
            "help": self._cmd_help,
            "datasets": self._cmd_datasets,
            "use": self._cmd_use,
            "load": self._cmd_load,
            "new": self._cmd_new,
            "thinking": self._cmd_thinking,
            "health": self._cmd_health,
            "debug": self._cmd_debug,
            "quit": self._cmd_quit,
            "exit": self._cmd_quit,
        }

    @property
    def service(self) -> ChatService:
        return self._service

    @property
    def renderer(self) -> ChatRenderer:
        return self._renderer

    def run(self) -> None:
        """Run the interactive loop until /quit or EOF."""
        asyncio.run(self._run_async())

    async def _run_async(self) -> None:
        prompt = PromptSession(history=InMemoryHistory())
        self._running = True
        self._renderer.print_banner()

        datasets = await self._service.refresh_datasets()
        if datasets:
            self._renderer.print_info(f"Using dataset '{self._store.selected_dataset}'", title="Dataset")
        else:
            self._renderer.print_warning(
                f"No datasets available from {self._config.api.base_url}", title="Backend"
            )

        while self._running:
            try:
                text = await prompt.prompt_async(PROMPT_TEXT)
            except (EOFError, KeyboardInterrupt):
                break
            await self.handle_input(text)

        self._renderer.print("[dim]Goodbye![/dim]")

    async def handle_input(self, text: str) -> None:
        """Dispatch one line of user input."""
        text = text.strip()
        if not text:
            return
        if text.startswith(SLASH_PREFIX):
            name, _, args = text[len(SLASH_PREFIX):].partition(" ")
            handler = self._commands.get(name.lower())
            if handler is None:
                self._renderer.print_warning(f"Unknown command /{name}. Type /help for commands.")
                return
            await handler(args.strip())
            return
        await self.ask(text)

    async def ask(self, query: str) -> None:
        """Send a question and show the answer as it streams."""
        start = len(self._store.messages)
        with Live(console=self._renderer.console, refresh_per_second=12) as live:
            def refresh() -> None:
                live.update(self._renderer.render_messages(self._store.messages[start:]))

            self._store.add_listener(refresh)
            try:
                await self._service.send(query)
            except StreamBusyError as e:
                self._renderer.print_warning(str(e))
            except asyncio.CancelledError:
                # The service has already closed the session
                logger.info("Answer cancelled")
                self._renderer.print_warning("Answer cancelled.")
                raise
            finally:
                self._store.remove_listener(refresh)
                refresh()

    async def _cmd_help(self, args: str) -> None:
        self._renderer.print(HELP_TEXT)

    async def _cmd_datasets(self, args: str) -> None:
        datasets = await self._service.refresh_datasets()
        self._renderer.print_datasets(datasets, self._store.selected_dataset)

    async def _cmd_use(self, args: str) -> None:
        if not args:
            self._renderer.print_warning("Usage: /use <dataset>")
            return
        if self._service.select_dataset(args):
            self._renderer.print_success(f"Using dataset '{args}'")
        else:
            self._renderer.print_error(f"Unknown dataset '{args}'. See /datasets.")

    async def _cmd_load(self, args: str) -> None:
        parts = args.split()
        if not parts:
            self._renderer.print_warning("Usage: /load <conversation-id> [last_n]")
            return
        last_n = self._config.chat.conversation_history
        if len(parts) > 1:
            try:
                last_n = int(parts[1])
            except ValueError:
                self._renderer.print_error(f"last_n must be a number, got '{parts[1]}'")
                return
        if await self._service.load_conversation(parts[0], last_n):
            self._renderer.print_messages(self._store.messages)
        else:
            self._renderer.print_error(f"Could not load conversation '{parts[0]}'")

    async def _cmd_new(self, args: str) -> None:
        self._service.new_conversation()
        self._renderer.print_success("Started a new conversation")

    async def _cmd_thinking(self, args: str) -> None:
        self._renderer.show_thinking = not self._renderer.show_thinking
        state = "shown" if self._renderer.show_thinking else "hidden"
        self._renderer.print_info(f"Thinking is now {state}")

    async def _cmd_health(self, args: str) -> None:
        if await self._service.health_check():
            self._renderer.print_success(f"Backend at {self._config.api.base_url} is healthy")
        else:
            self._renderer.print_error(f"Backend at {self._config.api.base_url} is not reachable")

    async def _cmd_debug(self, args: str) -> None:
        events = self._store.debug_events[-10:]
        self._renderer.print("\n".join(events) if events else "[dim]No debug events[/dim]")

    async def _cmd_quit(self, args: str) -> None:
        self._running = False


async def replay_transcript(
    path: Path,
    renderer: ChatRenderer,
    chunk_size: int = 64,
    strict: bool = False,
) -> ChatStore:
    """
    Reconstruct the messages of a recorded event stream file.

    The file is fed through the same send path as a live answer, with the
    byte source replaced by the file.
    """
    def source(request: StreamRequest) -> AsyncIterator[bytes]:
        return file_chunks(path, chunk_size)

    config = AppConfig()
    config.chat.strict_sequencing = strict
    store = ChatStore()
    service = ChatService(store, RAGApiClient(), config, stream_source=source)
    service.select_dataset(path.stem)
    await service.send(f"(replay of {path.name})")
    renderer.print_messages(store.messages)
    return store
