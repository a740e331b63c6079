"""
Rich UI renderer for raglite_chat.
Builds renderables for chat messages, thinking bubbles and performance metrics.
"""
from typing import Any, Iterable, List, Optional

from rich.console import Console, Group, RenderableType
from rich.markdown import Markdown
from rich.panel import Panel
from rich.table import Table
from rich.text import Text

from ..chat.message_state import Dataset, Message, MessageRole, PerformanceMetrics
from ..constants import APP_NAME, APP_VERSION
from ..utils import format_milliseconds, format_timestamp


METRICS_SEPARATOR = " • "


def format_metrics(metrics: Optional[PerformanceMetrics]) -> str:
    """
    Format performance metrics as a single line.

    Unmeasured fields are left out, e.g.
    "TTFT: 120ms • Total: 1.5s • 42 tokens • 4 sources • handbook".

    Args:
        metrics: Metrics of an assistant message

    Returns:
        Formatted line, empty if nothing has been measured
    """
    if metrics is None:
        return ""
    parts: List[str] = []
    if metrics.time_to_first_token is not None:
        parts.append(f"TTFT: {format_milliseconds(metrics.time_to_first_token)}")
    if metrics.total_response_time is not None:
        parts.append(f"Total: {format_milliseconds(metrics.total_response_time)}")
    if metrics.token_count is not None:
        parts.append(f"{metrics.token_count} tokens")
    if metrics.sources is not None:
        parts.append(f"{metrics.sources} sources")
    if metrics.model:
        parts.append(metrics.model)
    if metrics.dataset:
        parts.append(metrics.dataset)
    return METRICS_SEPARATOR.join(parts)


def visible_messages(messages: Iterable[Message]) -> List[Message]:
    """
    Filter messages for display.

    While a thinking message is active, empty assistant messages are hidden
    so no blank answer bubble appears during reasoning.
    """
    messages = list(messages)
    thinking_active = any(m.is_thinking for m in messages)
    return [
        m for m in messages
        if not (
            thinking_active
            and m.role is MessageRole.ASSISTANT
            and not m.is_thinking_any
            and not m.content.strip()
        )
    ]


class ChatRenderer:
    """
    Renderer for the chat transcript.

    User messages are plain text panels, assistant answers are rendered as
    markdown with a metrics subtitle, and thinking messages show a compact
    header whose text is only expanded when show_thinking is on.
    """

    def __init__(
        self,
        console: Optional[Console] = None,
        show_thinking: bool = False,
        show_metrics: bool = True,
        markdown_rendering: bool = True,
    ) -> None:
        """
        Initialize the renderer.

        Args:
            console: Optional Rich Console instance
            show_thinking: Expand thinking text
            show_metrics: Show the metrics line under answers
            markdown_rendering: Render answers as markdown
        """
        self._console = console or Console()
        self.show_thinking = show_thinking
        self.show_metrics = show_metrics
        self.markdown_rendering = markdown_rendering

    @property
    def console(self) -> Console:
        """Get the Rich console."""
        return self._console

    def print(self, *args: Any, **kwargs: Any) -> None:
        """Print to console."""
        self._console.print(*args, **kwargs)

    def print_banner(self) -> None:
        self._console.print(f"[bold cyan]{APP_NAME}[/bold cyan] [dim]v{APP_VERSION}[/dim]")
        self._console.print("[dim]Type /help for commands.[/dim]")
        self._console.print()

    def render_message(self, message: Message) -> RenderableType:
        """Build the renderable for one message."""
        if message.is_thinking_any:
            return self._render_thinking(message)

        if message.role is MessageRole.USER:
            return Panel(
                Text(message.content),
                title="[dim]You[/dim]",
                title_align="right",
                subtitle=f"[dim]{format_timestamp(message.timestamp)}[/dim]",
                subtitle_align="right",
                border_style="blue",
            )

        body: RenderableType
        if self.markdown_rendering and message.content:
            body = Markdown(message.content)
        else:
            body = Text(message.content)

        subtitle = None
        if self.show_metrics:
            line = format_metrics(message.performance_metrics)
            if line:
                subtitle = f"[dim]{line}[/dim]"

        return Panel(
            body,
            title="[bold cyan]Assistant[/bold cyan]",
            title_align="left",
            subtitle=subtitle,
            subtitle_align="left",
            border_style="cyan",
        )

    def _render_thinking(self, message: Message) -> RenderableType:
        label = "💭 Thinking…" if message.is_thinking else "💭 Thoughts"
        header = Text(label, style="yellow")
        if not self.show_thinking:
            return header
        content = message.content or "(thinking...)"
        return Group(header, Text(content, style="dim italic"))

    def render_messages(self, messages: Iterable[Message]) -> RenderableType:
        """Build one renderable for a list of messages."""
        return Group(*(self.render_message(m) for m in visible_messages(messages)))

    def print_messages(self, messages: Iterable[Message]) -> None:
        self._console.print(self.render_messages(messages))

    def print_datasets(self, datasets: List[Dataset], selected: Optional[str] = None) -> None:
        """Print the dataset listing as a table."""
        if not datasets:
            self.print_warning("The backend reported no datasets.")
            return
        table = Table(title="Datasets", show_header=True, header_style="bold cyan")
        table.add_column("", width=1)
        table.add_column("Index")
        table.add_column("Documents", justify="right")
        table.add_column("Embedding field")
        table.add_column("Dimensions", justify="right")
        for dataset in datasets:
            marker = "*" if dataset.index_name == selected else ""
            table.add_row(
                marker,
                dataset.index_name,
                str(dataset.document_count),
                dataset.embedding_field,
                str(dataset.dimensions),
            )
        self._console.print(table)

    def print_error(self, message: str, title: str = "Error") -> None:
        self._console.print(f"[bold red]✗ {title}[/bold red]")
        self._console.print(Text(message, style="red"))
        self._console.print()

    def print_warning(self, message: str, title: str = "Warning") -> None:
        self._console.print(f"[bold yellow]! {title}[/bold yellow]")
        self._console.print(Text(message, style="yellow"))
        self._console.print()

    def print_info(self, message: str, title: str = "Info") -> None:
        self._console.print(f"[bold blue]i {title}[/bold blue]")
        self._console.print(Text(message))
        self._console.print()

    def print_success(self, message: str, title: str = "Success") -> None:
        self._console.print(f"[bold green]✓ {title}[/bold green]")
        self._console.print(Text(message, style="green"))
        self._console.print()
