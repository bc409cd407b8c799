"""Tests for persistence.store and the domain models."""
import pytest
from pydantic import ValidationError

from avatalk.config import Config, StoreConfig
from avatalk.exceptions import StoreUnavailableError
from avatalk.models import Message, Mode, Sender, SessionRecord
from avatalk.persistence.store import InMemoryStore, SupabaseStore, create_store


class TestInMemoryStore:
    """Test InMemoryStore."""

    @pytest.fixture
    def store(self):
        """Create a store instance."""
        return InMemoryStore()

    @pytest.mark.asyncio
    async def test_insert_and_select(self, store):
        """Test rows can be found by matching columns."""
        await store.insert("messages", {"session_id": "a", "sender": "user", "message": "Hallo"})
        await store.insert("messages", {"session_id": "b", "sender": "user", "message": "Hallo"})

        rows = await store.select("messages", {"session_id": "a", "message": "Hallo"})

        assert len(rows) == 1
        assert rows[0]["session_id"] == "a"

    @pytest.mark.asyncio
    async def test_select_unknown_table(self, store):
        """Test selecting from an empty table."""
        assert await store.select("sessions", {"session_id": "x"}) == []

    @pytest.mark.asyncio
    async def test_update_by_match(self, store):
        """Test update only touches matching rows."""
        await store.insert("sessions", {"session_id": "a", "status": "active"})
        await store.insert("sessions", {"session_id": "b", "status": "active"})

        await store.update("sessions", {"status": "completed"}, {"session_id": "a"})

        statuses = {row["session_id"]: row["status"] for row in store.rows("sessions")}
        assert statuses == {"a": "completed", "b": "active"}

    @pytest.mark.asyncio
    async def test_selected_rows_are_copies(self, store):
        """Test callers cannot mutate stored rows through a select."""
        await store.insert("sessions", {"session_id": "a", "status": "active"})

        rows = await store.select("sessions", {"session_id": "a"})
        rows[0]["status"] = "tampered"

        assert store.rows("sessions")[0]["status"] == "active"

    @pytest.mark.asyncio
    @pytest.mark.parametrize("operation", ["insert", "update", "select"])
    async def test_failure_injection(self, operation):
        """Test configured operations raise StoreUnavailableError."""
        store = InMemoryStore(fail_on={operation})
        calls = {
            "insert": lambda: store.insert("t", {"a": 1}),
            "update": lambda: store.update("t", {"a": 2}, {"a": 1}),
            "select": lambda: store.select("t", {"a": 1}),
        }

        with pytest.raises(StoreUnavailableError):
            await calls[operation]()


class TestSupabaseStore:
    """Test SupabaseStore request shaping."""

    def test_filters_use_eq_operator(self):
        """Test match columns become PostgREST eq filters."""
        filters = SupabaseStore._filters({"session_id": "abc", "sender": "user"})

        assert filters == {"session_id": "eq.abc", "sender": "eq.user"}

    def test_endpoint_and_headers(self):
        """Test table URL and auth headers."""
        store = SupabaseStore("https://example.supabase.co/", "anon-key")

        assert store._endpoint("sessions") == "https://example.supabase.co/rest/v1/sessions"
        headers = store._headers()
        assert headers["apikey"] == "anon-key"
        assert headers["Authorization"] == "Bearer anon-key"


class TestCreateStore:
    """Test store factory."""

    def test_in_memory_without_credentials(self):
        """Test the fallback store when Supabase is not configured."""
        assert isinstance(create_store(StoreConfig()), InMemoryStore)

    def test_supabase_with_credentials(self):
        """Test Supabase is used when URL and key are set."""
        store = create_store(StoreConfig(supabase_url="https://x.supabase.co", supabase_key="k"))

        assert isinstance(store, SupabaseStore)
        assert store.url == "https://x.supabase.co"


class TestModels:
    """Test domain models."""

    def test_message_is_immutable(self):
        """Test messages cannot be changed after creation."""
        message = Message(text="Hallo", sender=Sender.USER)

        with pytest.raises(ValidationError):
            message.text = "Anders"

    def test_message_rejects_empty_text(self):
        """Test a message needs text."""
        with pytest.raises(ValidationError):
            Message(text="", sender=Sender.USER)

    def test_sender_alias(self):
        """Test "ai" is read as the avatar."""
        assert Message(text="Ok.", sender="ai").sender == Sender.AVATAR
        assert Sender.normalize("user") == Sender.USER

    def test_message_row(self):
        """Test the messages table row shape."""
        row = Message(text="Hallo", sender=Sender.USER, session_id="s1").to_row()

        assert set(row) == {"session_id", "sender", "message", "timestamp"}
        assert row["sender"] == "user"

    def test_session_row(self):
        """Test the sessions table row shape."""
        row = SessionRecord(session_id="s1").to_row()

        assert row["session_id"] == "s1"
        assert row["status"] == "active"
        assert "end_time" not in row

    def test_mode_values(self):
        """Test mode wire values."""
        assert Mode.TEXT.value == "text_mode"
        assert Mode.VOICE.value == "voice_mode"


class TestConfig:
    """Test configuration defaults."""

    def test_session_defaults(self):
        """Test the inactivity timeout and greeting defaults."""
        config = Config()

        assert config.session.timeout_s == 300
        assert config.session.greeting_text == "Hoi"
        assert config.session.toast_duration_s == 3.0
        assert config.session.voice_warmup.is_input_audio_muted is True
        assert config.store.is_remote is False

    def test_load_reads_environment(self, monkeypatch, tmp_path):
        """Test Supabase settings come from the environment."""
        monkeypatch.setenv("SUPABASE_URL", "https://x.supabase.co")
        monkeypatch.setenv("SUPABASE_ANON_KEY", "anon")

        config = Config.load(tmp_path / "missing.env")

        assert config.store.is_remote is True
        assert config.store.supabase_key == "anon"
