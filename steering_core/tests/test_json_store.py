import tempfile
import threading
from datetime import datetime, timedelta, timezone
from pathlib import Path

import pytest

from steering_core.domain.exceptions import PersistenceError, SessionNotFoundError
from steering_core.domain.session import Message
from steering_core.infrastructure.storage.json_store import JsonSessionStore


def test_activate_configuration_keeps_single_active():
    with tempfile.TemporaryDirectory() as d:
        store = JsonSessionStore(root=Path(d) / ".storage")
        first = store.activate_configuration("u1", "openai", "k1", "gpt-4o", "gpt-4o-mini")
        other = store.activate_configuration("u2", "qwen", "k2", "qwen-plus", "qwen-max")
        second = store.activate_configuration("u1", "anthropic", "k3", "claude-3-haiku-20240307", "claude-3-opus-20240229")

        configs = store.list_configurations("u1")
        assert [c.id for c in configs if c.is_active] == [second.id]
        assert {c.id for c in configs} == {first.id, second.id}
        assert store.get_active_configuration("u1").provider == "anthropic"
        assert store.get_active_configuration("u2").id == other.id
        assert store.get_active_configuration("nobody") is None


def test_concurrent_activation_keeps_single_active():
    with tempfile.TemporaryDirectory() as d:
        store = JsonSessionStore(root=Path(d) / ".storage")
        threads = [
            threading.Thread(
                target=store.activate_configuration,
                args=("u1", "openai", f"k{i}", "gpt-4o", "gpt-4o-mini"),
            )
            for i in range(8)
        ]
        for t in threads:
            t.start()
        for t in threads:
            t.join()
        configs = store.list_configurations("u1")
        assert len(configs) == 8
        assert sum(1 for c in configs if c.is_active) == 1


def test_session_lifecycle():
    with tempfile.TemporaryDirectory() as d:
        store = JsonSessionStore(root=Path(d) / ".storage")
        session = store.create_session("u1", "cfg-1")
        assert session.title.startswith("Session ")
        assert session.turn_count == 0 and not session.is_paused

        store.set_paused(session.id, True)
        assert store.get_session(session.id).is_paused
        store.increment_turn_count(session.id)
        store.increment_turn_count(session.id)
        assert store.get_session(session.id).turn_count == 2
        store.set_turn_count(session.id, 7)
        assert store.get_session(session.id).turn_count == 7

        assert [s.id for s in store.list_sessions("u1")] == [session.id]
        assert store.list_sessions("u2") == []
        assert store.get_session("../etc") is None
        with pytest.raises(SessionNotFoundError):
            store.set_paused("s-missing", True)


def test_messages_ordered_and_idempotent():
    with tempfile.TemporaryDirectory() as d:
        store = JsonSessionStore(root=Path(d) / ".storage")
        session = store.create_session("u1", "cfg-1")
        now = datetime.now(timezone.utc)
        later = Message(id="m2", session_id=session.id, model_type="A", content="second", created_at=now + timedelta(seconds=1))
        earlier = Message(id="m1", session_id=session.id, model_type="user", content="first", created_at=now)
        store.add_message(later)
        store.add_message(earlier)
        store.add_message(later)

        msgs = store.list_messages(session.id)
        assert [m.id for m in msgs] == ["m1", "m2"]
        assert msgs[1].content == "second"
        assert msgs[1].created_at == later.created_at


def test_add_message_to_unknown_session():
    with tempfile.TemporaryDirectory() as d:
        store = JsonSessionStore(root=Path(d) / ".storage")
        msg = Message(id="m1", session_id="s-missing", model_type="A", content="x", created_at=datetime.now(timezone.utc))
        with pytest.raises(SessionNotFoundError):
            store.add_message(msg)


def test_message_ids_survive_reopen():
    with tempfile.TemporaryDirectory() as d:
        root = Path(d) / ".storage"
        store = JsonSessionStore(root=root)
        session = store.create_session("u1", "cfg-1")
        msg = Message(id="m1", session_id=session.id, model_type="A", content="x", created_at=datetime.now(timezone.utc))
        store.add_message(msg)

        reopened = JsonSessionStore(root=root)
        reopened.add_message(msg)
        assert [m.id for m in reopened.list_messages(session.id)] == ["m1"]


def test_corrupt_message_log_raises_persistence_error():
    with tempfile.TemporaryDirectory() as d:
        root = Path(d) / ".storage"
        store = JsonSessionStore(root=root)
        session = store.create_session("u1", "cfg-1")
        (root / "sessions" / session.id / "messages.jsonl").write_text('{"id": "m1", "sess', encoding="utf-8")
        with pytest.raises(PersistenceError):
            store.list_messages(session.id)


def test_concurrent_reads_during_writes():
    with tempfile.TemporaryDirectory() as d:
        store = JsonSessionStore(root=Path(d) / ".storage")
        session = store.create_session("u1", "cfg-1")
        errors = []

        def write():
            for i in range(50):
                store.add_message(
                    Message(id=f"m{i}", session_id=session.id, model_type="A", content="y" * 2000,
                            created_at=datetime.now(timezone.utc))
                )

        def read():
            try:
                for _ in range(50):
                    store.list_messages(session.id)
            except Exception as e:
                errors.append(e)

        threads = [threading.Thread(target=write), threading.Thread(target=read), threading.Thread(target=read)]
        for t in threads:
            t.start()
        for t in threads:
            t.join()
        assert errors == []
        assert len(store.list_messages(session.id)) == 50


def test_search_and_delete_session():
    with tempfile.TemporaryDirectory() as d:
        store = JsonSessionStore(root=Path(d) / ".storage")
        alpha = store.create_session("u1", "cfg-1", title="Alpha tone test")
        beta = store.create_session("u1", "cfg-1", title="Beta")
        assert [s.id for s in store.list_sessions("u1", "TONE")] == [alpha.id]
        assert [s.id for s in store.list_sessions("u1", beta.id)] == [beta.id]

        store.delete_session(alpha.id)
        assert store.get_session(alpha.id) is None
        assert [s.id for s in store.list_sessions("u1")] == [beta.id]
        with pytest.raises(SessionNotFoundError):
            store.delete_session(alpha.id)
