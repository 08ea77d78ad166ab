"""
Rich printers for normalized chat events and aggregated responses.
"""
import json
from typing import Any, AsyncIterator, Dict, List, Optional

from rich.console import Console, Group
from rich.live import Live
from rich.markdown import Markdown
from rich.panel import Panel
from rich.syntax import Syntax
from rich.text import Text

from .stream import ChatStream
from .types import AggregatedChatResponse, ChatStreamEvent, ToolCall

default_console = Console()


def _metadata_panel(data: Dict[str, Any]) -> Panel:
    metadata_json = json.dumps(data, indent=2, default=str)
    return Panel(
        Syntax(metadata_json, "json", theme="lightbulb", background_color="default"),
        title="[bold]Metadata[/bold]",
        border_style="dim",
    )


def _tool_call_lines(tool_calls: List[Dict[str, Any]]) -> Text:
    text = Text()
    for tool_call in tool_calls:
        text.append("-> ", style="bold magenta")
        text.append(tool_call.get("name") or "?", style="bold")
        text.append(f"({tool_call.get('raw_arguments', '')})\n", style="dim")
    return text


def _response_metadata(response: AggregatedChatResponse) -> Dict[str, Any]:
    data: Dict[str, Any] = {"finish_reason": response["finish_reason"]}
    if response.get("raw_finish_reason"):
        data["raw_finish_reason"] = response["raw_finish_reason"]
    if response.get("usage"):
        data["usage"] = {k: v for k, v in response["usage"].items() if k != "raw"}
    if response.get("defects"):
        data["defects"] = len(response["defects"])
    data.update(response.get("meta") or {})
    return data


class RichStreamPrinter:
    """
    Live display of a normalized event stream using rich.

    Attributes:
        title: Title for the display panel
        show_metadata: Whether to show finish reason, usage and meta at the end
        show_reasoning: Whether to show reasoning text above the answer
        code_theme: Theme for code blocks
        refresh_rate: Refresh rate for Live display
        border_style: Border style while streaming
    """

    def __init__(
        self,
        title: str = "Streaming Response",
        show_metadata: bool = True,
        show_reasoning: bool = True,
        code_theme: str = "coffee",
        inline_code_theme: str = "monokai",
        refresh_rate: int = 30,
        border_style: str = "blue",
        console: Optional[Console] = None,
    ):
        self.title = title
        self.show_metadata = show_metadata
        self.show_reasoning = show_reasoning
        self.code_theme = code_theme
        self.inline_code_theme = inline_code_theme
        self.refresh_rate = refresh_rate
        self.border_style = border_style
        self.console = console or default_console
        self._reset()

    def _reset(self) -> None:
        self._text = ""
        self._reasoning = ""
        self._tool_calls: Dict[int, Dict[str, Any]] = {}
        self._end: Optional[ChatStreamEvent] = None
        self._response: Optional[AggregatedChatResponse] = None

    async def print_stream(
        self,
        events: AsyncIterator[ChatStreamEvent],
        provider: Optional[str] = None,
    ) -> Optional[AggregatedChatResponse]:
        """
        Consume and display events.

        Args:
            events: A ChatStream or any async iterator of ChatStreamEvents.
            provider: Shown in the title. Taken from the ChatStream target
                when omitted.

        Returns:
            The aggregate when `events` is a ChatStream that ended, else None.
        """
        self._reset()
        if provider is None and isinstance(events, ChatStream):
            provider = events.target.adapter_kind

        with Live(Panel(""), refresh_per_second=self.refresh_rate, console=self.console) as live:
            async for event in events:
                self._apply(event)
                live.update(self._render(provider))

            if isinstance(events, ChatStream) and events.accumulator.closed:
                self._response = events.response
                live.update(self._render(provider))

        return self._response

    def _apply(self, event: ChatStreamEvent) -> None:
        match event["type"]:
            case "text_delta":
                self._text += event["text"]
            case "reasoning_delta":
                self._reasoning += event["text"]
            case "tool_call_start":
                self._tool_calls[event["index"]] = {"name": event["name"], "raw_arguments": ""}
            case "tool_call_args_delta":
                if event["index"] in self._tool_calls:
                    self._tool_calls[event["index"]]["raw_arguments"] += event["fragment"]
            case "stream_end":
                self._end = event

    def _render(self, provider: Optional[str]) -> Panel:
        is_final = self._end is not None
        title = "[bold]Final Response[/bold]" if is_final else f"[bold]{self.title}[/bold]"
        if provider:
            title += f" [dim]({provider})[/dim]"

        parts: List[Any] = []
        if self.show_reasoning and self._reasoning.strip():
            parts.append(Text(self._reasoning, style="dim italic"))
        if self._text.strip():
            parts.append(Markdown(self._text, code_theme=self.code_theme, inline_code_theme=self.inline_code_theme))
        if self._tool_calls:
            parts.append(_tool_call_lines([self._tool_calls[i] for i in sorted(self._tool_calls)]))
        if not parts:
            parts.append(Text("(waiting for response...)", style="dim italic"))

        if is_final and self.show_metadata:
            if self._response is not None:
                parts.append(_metadata_panel(_response_metadata(self._response)))
            else:
                parts.append(_metadata_panel({"finish_reason": self._end["reason"]}))

        return Panel(
            Group(*parts),
            title=title,
            border_style="green" if is_final else self.border_style,
            padding=(1, 2),
        )

    def get_text(self) -> str:
        return self._text

    def get_response(self) -> Optional[AggregatedChatResponse]:
        return self._response


class RichPrinter:
    """
    Displays an AggregatedChatResponse from `UnifiedChatClient.chat()`.
    """

    def __init__(
        self,
        title: str = "Response",
        show_metadata: bool = True,
        code_theme: str = "coffee",
        inline_code_theme: str = "monokai",
        border_style: str = "green",
        console: Optional[Console] = None,
    ):
        self.title = title
        self.show_metadata = show_metadata
        self.code_theme = code_theme
        self.inline_code_theme = inline_code_theme
        self.border_style = border_style
        self.console = console or default_console

    def print_chat(self, response: AggregatedChatResponse) -> AggregatedChatResponse:
        """
        Print one response panel and return the response for chaining.
        """
        parts: List[Any] = []
        if response.get("reasoning"):
            parts.append(Text(response["reasoning"], style="dim italic"))
        if response.get("text", "").strip():
            parts.append(
                Markdown(response["text"], code_theme=self.code_theme, inline_code_theme=self.inline_code_theme)
            )
        tool_calls: List[ToolCall] = response.get("tool_calls") or []
        if tool_calls:
            parts.append(_tool_call_lines(tool_calls))
        if not parts:
            parts.append(Text("(empty response)", style="dim italic"))
        if self.show_metadata:
            parts.append(_metadata_panel(_response_metadata(response)))

        title = f"[bold]{self.title}[/bold]"
        if response.get("provider"):
            title += f" [dim]({response['provider']})[/dim]"

        self.console.print(Panel(Group(*parts), title=title, border_style=self.border_style, padding=(1, 2)))
        return response


async def print_chat_stream(
    stream: ChatStream,
    console: Optional[Console] = None,
    **printer_options,
) -> Optional[AggregatedChatResponse]:
    """Shortcut for `RichStreamPrinter(...).print_stream(stream)`."""
    printer = RichStreamPrinter(console=console, **printer_options)
    return await printer.print_stream(stream)
