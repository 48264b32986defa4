"""Tests for the SQLite conversation store."""

import pytest

from mealprep_assistant.application.exceptions import ConversationNotFoundError


class TestConversations:
    def test_create_and_find_latest(self, store):
        first = store.create_conversation("alice", "s-1", "First")
        second = store.create_conversation("alice", "s-1", "Second")

        latest = store.find_latest_conversation("alice", "s-1")
        assert latest is not None
        assert latest.id == second.id
        assert latest.id != first.id

    def test_session_key_is_scoped_by_user(self, store):
        store.create_conversation("alice", "shared", "Alice's")
        assert store.find_latest_conversation("bob", "shared") is None

    def test_selected_intent(self, store):
        conv = store.create_conversation("alice", "s-1", "t")
        store.set_selected_intent(conv.id, "rag_search")
        assert store.get_conversation(conv.id, "alice").selected_intent == "rag_search"

    def test_get_conversation_checks_owner(self, store):
        conv = store.create_conversation("alice", "s-1", "t")
        assert store.get_conversation(conv.id, "bob") is None


class TestMessages:
    def test_save_and_read_back_in_order(self, store):
        conv = store.create_conversation("alice", "s-1", "t")
        store.save_message(conv.id, "user", "hello", metadata={"images": 0, "hasImages": False})
        store.save_message(conv.id, "assistant", "hi there", message_type="recipe", metadata={"intent": "x"})

        messages = store.get_messages(conv.id, "alice")
        assert [(m.sender, m.content) for m in messages] == [("user", "hello"), ("assistant", "hi there")]
        assert messages[0].metadata == {"images": 0, "hasImages": False}
        assert messages[1].message_type == "recipe"

    def test_save_bumps_last_message_at(self, store):
        conv = store.create_conversation("alice", "s-1", "t")
        assert conv.last_message_at is None
        msg = store.save_message(conv.id, "user", "hello")
        assert store.get_conversation(conv.id, "alice").last_message_at == msg.created_at

    def test_get_messages_for_unknown_conversation(self, store):
        conv = store.create_conversation("alice", "s-1", "t")
        with pytest.raises(ConversationNotFoundError):
            store.get_messages("missing", "alice")
        with pytest.raises(ConversationNotFoundError):
            store.get_messages(conv.id, "bob")

    def test_recent_messages_oldest_first(self, store):
        conv = store.create_conversation("alice", "s-1", "t")
        for i in range(5):
            store.save_message(conv.id, "user", f"m{i}")
        assert [m.content for m in store.get_recent_messages(conv.id, 3)] == ["m2", "m3", "m4"]

    def test_reads_are_idempotent(self, store):
        conv = store.create_conversation("alice", "s-1", "t")
        store.save_message(conv.id, "user", "hello")
        first = store.get_messages(conv.id, "alice")
        second = store.get_messages(conv.id, "alice")
        assert first == second


class TestListingAndDeletion:
    def test_list_orders_by_activity_with_counts(self, store):
        quiet = store.create_conversation("alice", "s-1", "Quiet")
        busy = store.create_conversation("alice", "s-2", "Busy")
        store.save_message(quiet.id, "user", "one")
        store.save_message(busy.id, "user", "one")
        store.save_message(busy.id, "assistant", "two")
        empty = store.create_conversation("alice", "s-3", "Empty")

        summaries = store.list_conversations("alice")
        assert [s.id for s in summaries] == [busy.id, quiet.id, empty.id]
        assert [s.message_count for s in summaries] == [2, 1, 0]

    def test_delete_one_cascades_to_messages(self, store):
        conv = store.create_conversation("alice", "s-1", "t")
        store.save_message(conv.id, "user", "hello")

        assert store.delete_conversation(conv.id, "alice") is True
        assert store.get_conversation(conv.id, "alice") is None
        (count,) = store.conn.execute("SELECT COUNT(*) FROM messages").fetchone()
        assert count == 0

    def test_delete_requires_owner(self, store):
        conv = store.create_conversation("alice", "s-1", "t")
        assert store.delete_conversation(conv.id, "bob") is False
        assert store.delete_conversation("missing", "alice") is False

    def test_delete_all_counts_only_own(self, store):
        store.create_conversation("alice", "s-1", "a")
        store.create_conversation("alice", "s-2", "b")
        store.create_conversation("bob", "s-1", "c")

        assert store.delete_all_conversations("alice") == 2
        assert store.list_conversations("alice") == []
        assert len(store.list_conversations("bob")) == 1
