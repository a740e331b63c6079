"""
Tests for the chat renderer: metrics line, message filtering and output.
"""

import io

import allure
from rich.console import Console

from raglite_chat.chat.message_state import Dataset, Message, MessageRole, PerformanceMetrics
from raglite_chat.rich_ui.renderer import ChatRenderer, format_metrics, visible_messages


def renderer_with_buffer(**kwargs):
    buffer = io.StringIO()
    console = Console(file=buffer, width=100, color_system=None, force_terminal=False)
    return ChatRenderer(console=console, **kwargs), buffer


@allure.feature("Chat Renderer")
@allure.story("Metrics line")
@allure.severity(allure.severity_level.CRITICAL)
def test_format_metrics_full_line():
    metrics = PerformanceMetrics(
        time_to_first_token=120.4,
        total_response_time=1530,
        token_count=42,
        sources=4,
        model="llama3",
        dataset="handbook",
    )

    assert format_metrics(metrics) == "TTFT: 120ms • Total: 1.5s • 42 tokens • 4 sources • llama3 • handbook"


@allure.feature("Chat Renderer")
@allure.story("Metrics line")
@allure.severity(allure.severity_level.NORMAL)
def test_format_metrics_skips_unmeasured_fields():
    assert format_metrics(None) == ""
    assert format_metrics(PerformanceMetrics()) == ""
    assert format_metrics(PerformanceMetrics(sources=0, dataset="default")) == "0 sources • default"


@allure.feature("Chat Renderer")
@allure.story("Metrics line")
@allure.severity(allure.severity_level.NORMAL)
def test_format_metrics_shows_measured_zeroes():
    metrics = PerformanceMetrics(time_to_first_token=0, total_response_time=0.0, token_count=0)

    assert format_metrics(metrics) == "TTFT: 0ms • Total: 0ms • 0 tokens"


@allure.feature("Chat Renderer")
@allure.story("Thinking visibility")
@allure.severity(allure.severity_level.CRITICAL)
def test_empty_answer_hidden_while_thinking():
    thinking = Message(id="t", role=MessageRole.ASSISTANT, is_thinking=True)
    empty = Message(id="r", role=MessageRole.ASSISTANT, content="  ")
    user = Message(id="u", role=MessageRole.USER, content="")

    assert visible_messages([user, thinking, empty]) == [user, thinking]


@allure.feature("Chat Renderer")
@allure.story("Thinking visibility")
@allure.severity(allure.severity_level.NORMAL)
def test_empty_answer_shown_once_thinking_completed():
    thinking = Message(id="t", role=MessageRole.ASSISTANT, thinking_completed=True)
    empty = Message(id="r", role=MessageRole.ASSISTANT)

    assert visible_messages([thinking, empty]) == [thinking, empty]


@allure.feature("Chat Renderer")
@allure.story("Message rendering")
@allure.severity(allure.severity_level.NORMAL)
def test_print_messages_renders_answer_and_metrics():
    renderer, buffer = renderer_with_buffer()
    messages = [
        Message(id="u", role=MessageRole.USER, content="What is RAG?"),
        Message(id="t", role=MessageRole.ASSISTANT, content="secret reasoning", thinking_completed=True),
        Message(
            id="r",
            role=MessageRole.ASSISTANT,
            content="Retrieval augmented generation.",
            performance_metrics=PerformanceMetrics(token_count=8, dataset="handbook"),
        ),
    ]

    renderer.print_messages(messages)
    output = buffer.getvalue()

    assert "What is RAG?" in output
    assert "Retrieval augmented generation." in output
    assert "8 tokens • handbook" in output
    assert "Thoughts" in output
    assert "secret reasoning" not in output


@allure.feature("Chat Renderer")
@allure.story("Message rendering")
@allure.severity(allure.severity_level.NORMAL)
def test_show_thinking_expands_text():
    renderer, buffer = renderer_with_buffer(show_thinking=True)

    renderer.print_messages([
        Message(id="t", role=MessageRole.ASSISTANT, content="step one", is_thinking=True),
    ])

    assert "step one" in buffer.getvalue()
    assert "Thinking" in buffer.getvalue()


@allure.feature("Chat Renderer")
@allure.story("Datasets table")
@allure.severity(allure.severity_level.MINOR)
def test_print_datasets_marks_selection():
    renderer, buffer = renderer_with_buffer()

    renderer.print_datasets([Dataset("handbook", 12, "vec", 384), Dataset("wiki")], selected="wiki")
    output = buffer.getvalue()

    assert "handbook" in output and "wiki" in output
    assert "*" in output
