"""Tests for the in-memory ConversationStore."""

from agentstream.loop.messages import Message
from agentstream.runtime.conversations import ConversationStore


class TestConversationStore:
    def test_unknown_conversation_is_empty(self):
        store = ConversationStore()
        assert store.snapshot("nope") == []
        assert "nope" not in store

    def test_append_and_snapshot(self):
        store = ConversationStore()
        store.append("c1", [Message.user_text("hi"), Message(role="assistant")])
        store.append("c1", [Message.user_text("again")])

        assert [m.role for m in store.snapshot("c1")] == ["user", "assistant", "user"]
        assert "c1" in store
        assert len(store) == 1

    def test_snapshot_is_a_copy(self):
        store = ConversationStore()
        store.append("c1", [Message.user_text("hi")])

        snapshot = store.snapshot("c1")
        snapshot.append(Message.user_text("not committed"))

        assert len(store.snapshot("c1")) == 1

    def test_evicts_least_recently_used(self):
        store = ConversationStore(max_conversations=2)
        store.append("a", [Message.user_text("1")])
        store.append("b", [Message.user_text("2")])
        store.append("a", [Message.user_text("3")])
        store.append("c", [Message.user_text("4")])

        assert "a" in store
        assert "b" not in store
        assert "c" in store

    def test_new_ids_are_unique(self):
        assert ConversationStore.new_id() != ConversationStore.new_id()

    def test_lock_is_shared_per_conversation(self):
        store = ConversationStore()
        lock = store.lock("c1")

        assert store.lock("c1") is lock
        assert store.lock("c2") is not lock
