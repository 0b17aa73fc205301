"""Tests for chat history sessions."""

import pytest

from contui.memory.session import ChatHistory
from contui.utils.errors import ContuiError, SessionNotFoundError


@pytest.fixture
def history():
    return ChatHistory()


class TestChatHistory:

    def test_new_session_becomes_current(self, history):
        session_id = history.new_session("Work")

        assert history.current_session_id == session_id
        assert history.current_session.title == "Work"

    def test_default_title(self, history):
        history.new_session()

        assert history.current_session.title.startswith("Chat Session ")

    def test_add_message_requires_session(self, history):
        with pytest.raises(ContuiError):
            history.add_message("hello", is_user=True)

    def test_ensure_active_session_reuses_current(self, history):
        first = history.ensure_active_session()

        assert history.ensure_active_session() == first
        assert len(history.sessions) == 1

    def test_conversation_context_roles_and_window(self, history):
        history.new_session()
        for i in range(4):
            history.add_message(f"question {i}", is_user=True)
            history.add_message(f"answer {i}", is_user=False)

        context = history.get_conversation_context(3)

        assert [(m.role, m.content) for m in context] == [
            ("assistant", "answer 2"),
            ("user", "question 3"),
            ("assistant", "answer 3"),
        ]
        assert history.get_conversation_context(0) == []

    def test_conversation_context_can_skip_latest(self, history):
        history.new_session()
        history.add_message("question", is_user=True)
        history.add_message("answer", is_user=False)

        context = history.get_conversation_context(5, skip_latest=True)

        assert [(m.role, m.content) for m in context] == [("user", "question")]

    def test_switch_and_delete(self, history):
        first = history.new_session("first")
        second = history.new_session("second")

        history.switch_session(first)
        assert history.current_session.title == "first"

        history.delete_session(first)
        assert history.current_session is None
        assert list(history.sessions) == [second]

        with pytest.raises(SessionNotFoundError):
            history.switch_session(first)
        with pytest.raises(SessionNotFoundError):
            history.delete_session(first)

    def test_session_list_most_recent_first(self, history):
        old = history.new_session("old")
        new = history.new_session("new")
        history.switch_session(old)
        history.add_message("bump", is_user=True)

        assert [s.id for s in history.get_session_list()] == [old, new]

    def test_clear_messages(self, history):
        assert history.clear_messages() == 0

        history.new_session()
        history.add_message("a", is_user=True)
        history.add_message("b", is_user=False)

        assert history.clear_messages() == 2
        assert history.current_session.messages == []
