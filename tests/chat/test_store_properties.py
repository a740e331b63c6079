"""
Property-based tests for the chat store and channel reconciler.

Tests watermark acceptance, lazy response creation, finalization and the
terminal invariant using hypothesis.
"""

import allure
import pytest
from hypothesis import given, settings, strategies as st

from raglite_chat.chat.message_state import Message, MessageRole, StreamPhase
from raglite_chat.chat.store import ChatStore
from raglite_chat.streaming.reconciler import ChannelReconciler
from raglite_chat.streaming.records import (
    Channel,
    ControlRecord,
    SequencePolicy,
    TokenRecord,
)


class FakeClock:
    def __init__(self, now: float = 10.0) -> None:
        self.now = now

    def __call__(self) -> float:
        return self.now


def started_store(clock=None, dataset="handbook"):
    store = ChatStore(clock=clock or FakeClock())
    session_id = store.start_session(dataset)
    return store, session_id


def response_of(store):
    session = store.session
    if session is not None:
        return store.get_message(session.response_message_id) if session.response_message_id else None
    return next((m for m in store.messages if not m.is_thinking_any and m.role is MessageRole.ASSISTANT), None)


def thinking_of(store):
    return next(m for m in store.messages if m.is_thinking_any)


@allure.feature("Channel Reconciler")
@allure.story("Initial sequence acceptance")
@allure.severity(allure.severity_level.CRITICAL)
@pytest.mark.parametrize("channel", list(Channel))
def test_seq_zero_first_token_accepted(channel):
    store, session_id = started_store()
    reconciler = ChannelReconciler(store, session_id)

    assert reconciler.apply(TokenRecord(channel, "first", 0))
    assert store.session.last_accepted_seq[channel] == 0


# **Property: equal sequence numbers are both appended**
@allure.feature("Channel Reconciler")
@allure.story("Non-strict over-accept")
@allure.severity(allure.severity_level.CRITICAL)
@settings(max_examples=100)
@given(channel=st.sampled_from(list(Channel)),
       seq=st.integers(0, 10_000),
       first=st.text(min_size=1, max_size=10),
       second=st.text(min_size=1, max_size=10))
def test_equal_sequence_both_appended(channel, seq, first, second):
    """For two tokens with equal seq on one channel, both texts are appended."""
    store, session_id = started_store()
    reconciler = ChannelReconciler(store, session_id)

    assert reconciler.apply(TokenRecord(channel, first, seq))
    assert reconciler.apply(TokenRecord(channel, second, seq))

    target = thinking_of(store) if channel is Channel.THINKING else response_of(store)
    assert target.content == first + second
    assert reconciler.stats.accepted == 2


# **Property: watermark is monotone under the non-strict policy**
@allure.feature("Channel Reconciler")
@allure.story("Watermark")
@allure.severity(allure.severity_level.CRITICAL)
@settings(max_examples=100)
@given(seqs=st.lists(st.integers(0, 50), min_size=1, max_size=20))
def test_only_tokens_at_or_above_watermark_accepted(seqs):
    """Accepted text is exactly the tokens whose seq is >= the running maximum."""
    store, session_id = started_store()
    reconciler = ChannelReconciler(store, session_id)

    expected = ""
    watermark = -1
    for i, seq in enumerate(seqs):
        text = f"<{i}>"
        reconciler.apply(TokenRecord(Channel.RESPONSE, text, seq))
        if seq >= watermark:
            watermark = seq
            expected += text

    assert response_of(store).content == expected
    assert store.session.last_accepted_seq[Channel.RESPONSE] == watermark
    assert store.session.last_accepted_seq[Channel.THINKING] == -1


@allure.feature("Channel Reconciler")
@allure.story("Strict policy")
@allure.severity(allure.severity_level.NORMAL)
def test_strict_policy_drops_equal_sequence():
    store, session_id = started_store()
    reconciler = ChannelReconciler(store, session_id, SequencePolicy.STRICT)

    assert reconciler.apply(TokenRecord(Channel.THINKING, "a", 0))
    assert not reconciler.apply(TokenRecord(Channel.THINKING, "a", 0))
    assert reconciler.apply(TokenRecord(Channel.THINKING, "b", 1))

    assert thinking_of(store).content == "ab"
    assert reconciler.stats.dropped == 1
    assert any(e.startswith("[drop]") for e in store.debug_events)


@allure.feature("Channel Reconciler")
@allure.story("Unknown records")
@allure.severity(allure.severity_level.MINOR)
def test_unknown_record_type_rejected():
    store, session_id = started_store()
    reconciler = ChannelReconciler(store, session_id)

    with pytest.raises(TypeError):
        reconciler.apply("not a record")


@allure.feature("Message Lifecycle")
@allure.story("Lazy response creation")
@allure.severity(allure.severity_level.CRITICAL)
def test_response_created_only_on_first_response_token():
    store, session_id = started_store()

    assert store.phase is StreamPhase.THINKING
    assert len(store.messages) == 1
    assert thinking_of(store).is_thinking

    store.accept_token(session_id, Channel.THINKING, "hmm", 0)
    assert len(store.messages) == 1

    store.accept_token(session_id, Channel.RESPONSE, "Hi", 0)
    assert store.phase is StreamPhase.RESPONDING
    assert len(store.messages) == 2

    store.accept_token(session_id, Channel.RESPONSE, " there", 1)
    assert len(store.messages) == 2
    assert response_of(store).content == "Hi there"


@allure.feature("Message Lifecycle")
@allure.story("Lazy response creation")
@allure.severity(allure.severity_level.NORMAL)
def test_removed_response_recreated_under_new_id():
    store, session_id = started_store()
    store.accept_token(session_id, Channel.RESPONSE, "Hi", 0)
    first_id = store.session.response_message_id

    assert store.remove_message(first_id)
    store.accept_token(session_id, Channel.RESPONSE, " again", 1)

    second_id = store.session.response_message_id
    assert second_id != first_id
    assert store.get_message(first_id) is None
    assert store.get_message(second_id).content == " again"


@allure.feature("Message Lifecycle")
@allure.story("Time to first token")
@allure.severity(allure.severity_level.CRITICAL)
def test_ttft_measured_once_from_send_and_ignores_thinking():
    clock = FakeClock(10.0)
    store, session_id = started_store(clock)

    clock.now = 10.2
    store.accept_token(session_id, Channel.THINKING, "thinking", 0)
    clock.now = 10.5
    store.accept_token(session_id, Channel.RESPONSE, "A", 0)
    clock.now = 11.0
    store.accept_token(session_id, Channel.RESPONSE, "B", 1)

    metrics = response_of(store).performance_metrics
    assert metrics.time_to_first_token == pytest.approx(500.0)
    assert store.session.has_received_first_token
    assert thinking_of(store).performance_metrics is None


@allure.feature("Message Lifecycle")
@allure.story("Finalization")
@allure.severity(allure.severity_level.CRITICAL)
@settings(max_examples=100)
@given(thinking=st.text(max_size=20), answer=st.text(min_size=1, max_size=30))
def test_finalize_trims_response_only(thinking, answer):
    """
    After finalization the response has no surrounding whitespace and the
    thinking message is exactly what was streamed.
    """
    store, session_id = started_store()
    if thinking:
        store.accept_token(session_id, Channel.THINKING, thinking, 0)
    store.accept_token(session_id, Channel.RESPONSE, f"  {answer}\n", 0)

    assert store.finalize_session(session_id)

    response = response_of(store)
    assert response.content == response.content.strip()
    assert response.content == answer.strip()
    done = thinking_of(store)
    assert done.content == thinking
    assert done.thinking_completed and not done.is_thinking


@allure.feature("Message Lifecycle")
@allure.story("Finalization")
@allure.severity(allure.severity_level.NORMAL)
def test_finalize_stamps_total_time_dataset_and_tokens():
    clock = FakeClock(1.0)
    store, session_id = started_store(clock, dataset="handbook")
    store.accept_token(session_id, Channel.RESPONSE, "12345678", 0)
    clock.now = 2.5

    store.finalize_session(session_id)

    metrics = response_of(store).performance_metrics
    assert metrics.total_response_time == pytest.approx(1500.0)
    assert metrics.dataset == "handbook"
    assert metrics.token_count == 2
    assert store.phase is StreamPhase.IDLE


@allure.feature("Message Lifecycle")
@allure.story("Finalization")
@allure.severity(allure.severity_level.NORMAL)
def test_selected_dataset_wins_over_session_dataset():
    store = ChatStore(clock=FakeClock())
    store.select_dataset("selected")
    session_id = store.start_session("sent")
    store.accept_token(session_id, Channel.RESPONSE, "x", 0)

    store.finalize_session(session_id)

    assert response_of(store).performance_metrics.dataset == "selected"


@allure.feature("Message Lifecycle")
@allure.story("No response ever")
@allure.severity(allure.severity_level.NORMAL)
def test_stream_without_response_tokens_is_not_an_error():
    store, session_id = started_store()
    store.accept_token(session_id, Channel.THINKING, "only thoughts", 0)

    assert store.finalize_session(session_id)

    assert len(store.messages) == 1
    assert thinking_of(store).thinking_completed


@allure.feature("Message Lifecycle")
@allure.story("Error notice")
@allure.severity(allure.severity_level.CRITICAL)
def test_error_notice_materializes_response():
    store, session_id = started_store()

    store.finalize_session(session_id, error="Error: Could not connect to the backend.")

    response = response_of(store)
    assert response.content == "Error: Could not connect to the backend."
    assert thinking_of(store).thinking_completed


@allure.feature("Message Lifecycle")
@allure.story("Error notice")
@allure.severity(allure.severity_level.NORMAL)
def test_error_notice_appended_after_partial_answer():
    store, session_id = started_store()
    store.accept_token(session_id, Channel.RESPONSE, "Partial", 0)

    store.finalize_session(session_id, error="Error: Boom.")

    assert response_of(store).content == "Partial\n\nError: Boom."


# **Property: no mutation after finalization**
@allure.feature("Message Lifecycle")
@allure.story("Terminal invariant")
@allure.severity(allure.severity_level.CRITICAL)
@settings(max_examples=100)
@given(channel=st.sampled_from(list(Channel)),
       seq=st.integers(0, 100),
       text=st.text(min_size=1, max_size=10))
def test_no_mutation_after_finalize(channel, seq, text):
    """For any late token or control record, a finalized session is untouched."""
    store, session_id = started_store()
    store.accept_token(session_id, Channel.RESPONSE, "done", 0)
    store.finalize_session(session_id)
    snapshot = store.messages

    assert not store.accept_token(session_id, channel, text, seq)
    assert not store.apply_control(session_id, sources=9, conversation_id="late")
    assert not store.finalize_session(session_id, error="Error: late.")

    assert store.messages == snapshot
    assert store.conversation_id is None


@allure.feature("Message Lifecycle")
@allure.story("Superseded session")
@allure.severity(allure.severity_level.NORMAL)
def test_new_session_supersedes_open_one():
    store, first = started_store()
    store.accept_token(first, Channel.RESPONSE, "old", 0)

    second = store.start_session("handbook")

    assert second != first
    assert not store.accept_token(first, Channel.RESPONSE, " stale", 1)
    assert store.accept_token(second, Channel.RESPONSE, "new", 0)
    old_response = next(m for m in store.messages if m.content == "old")
    assert old_response.performance_metrics.total_response_time is not None


@allure.feature("Message Lifecycle")
@allure.story("Control records")
@allure.severity(allure.severity_level.NORMAL)
def test_control_record_through_reconciler():
    store, session_id = started_store()
    reconciler = ChannelReconciler(store, session_id)
    reconciler.apply(TokenRecord(Channel.RESPONSE, "x", 0))

    assert reconciler.apply(ControlRecord(sources=3, conversation_id="c-9"))

    assert response_of(store).performance_metrics.sources == 3
    assert store.conversation_id == "c-9"
    assert reconciler.stats.control == 1


@allure.feature("Message Lifecycle")
@allure.story("Dismissed thinking message")
@allure.severity(allure.severity_level.MINOR)
def test_thinking_token_after_dismissal_is_dropped():
    store, session_id = started_store()
    store.remove_message(store.session.thinking_message_id)

    assert not store.accept_token(session_id, Channel.THINKING, "lost", 0)
    assert store.accept_token(session_id, Channel.RESPONSE, "kept", 0)


@allure.feature("Chat Store")
@allure.story("Read accessors return copies")
@allure.severity(allure.severity_level.NORMAL)
def test_accessors_return_copies():
    store, session_id = started_store()
    store.accept_token(session_id, Channel.RESPONSE, "x", 0)

    store.messages[-1].content = "tampered"
    store.session.last_accepted_seq[Channel.RESPONSE] = 99

    assert response_of(store).content == "x"
    assert store.session.last_accepted_seq[Channel.RESPONSE] == 0


@allure.feature("Chat Store")
@allure.story("Listeners")
@allure.severity(allure.severity_level.NORMAL)
def test_listeners_notified_on_changes():
    store = ChatStore(clock=FakeClock())
    calls = []
    store.add_listener(lambda: calls.append(1))

    session_id = store.start_session("handbook")
    store.accept_token(session_id, Channel.RESPONSE, "x", 0)
    count = len(calls)
    store.accept_token(session_id + 1, Channel.RESPONSE, "ignored", 0)

    assert count >= 2
    assert len(calls) == count


@allure.feature("Chat Store")
@allure.story("Message ids")
@allure.severity(allure.severity_level.MINOR)
def test_duplicate_message_id_rejected():
    store = ChatStore()
    store.add_message(MessageRole.USER, "hi", message_id="fixed")

    with pytest.raises(ValueError):
        store.add_message(MessageRole.USER, "again", message_id="fixed")


@allure.feature("Chat Store")
@allure.story("Message ids")
@allure.severity(allure.severity_level.MINOR)
def test_generated_ids_are_unique():
    store = ChatStore()
    ids = {store.add_message(MessageRole.USER, str(i)) for i in range(200)}

    assert len(ids) == 200


@allure.feature("Chat Store")
@allure.story("Debug events")
@allure.severity(allure.severity_level.MINOR)
def test_debug_events_capped():
    store = ChatStore(max_debug_events=5)
    for i in range(20):
        store.add_debug_event(f"event {i}")

    assert store.debug_events == [f"event {i}" for i in range(15, 20)]


@allure.feature("Chat Store")
@allure.story("Message model")
@allure.severity(allure.severity_level.MINOR)
def test_message_cannot_be_active_and_completed_thinking():
    with pytest.raises(ValueError):
        Message(id="m", role=MessageRole.ASSISTANT, is_thinking=True, thinking_completed=True)
