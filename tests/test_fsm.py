"""Tests for orchestration.fsm."""
import pytest

from avatalk.orchestration.fsm import (
    Event,
    State,
    create_session_fsm,
)


class TestFiniteStateMachine:
    """Test FiniteStateMachine."""

    @pytest.fixture
    def fsm(self):
        """Create an FSM instance."""
        return create_session_fsm()

    @pytest.mark.asyncio
    async def test_initial_state(self, fsm):
        """Test initial state."""
        assert fsm.current_state == State.IDLE

    @pytest.mark.asyncio
    async def test_transition_idle_to_connecting(self, fsm):
        """Test IDLE -> CONNECTING transition."""
        result = await fsm.transition(Event.START_REQUESTED)

        assert result is True
        assert fsm.current_state == State.CONNECTING

    @pytest.mark.asyncio
    async def test_invalid_transition(self, fsm):
        """Test invalid transition."""
        # IDLE -> CONNECTED is not valid
        result = await fsm.transition(Event.CONNECTED)

        assert result is False
        assert fsm.current_state == State.IDLE

    @pytest.mark.asyncio
    async def test_end_from_idle_is_rejected(self, fsm):
        """Ending is only possible once a session was requested."""
        assert await fsm.transition(Event.END_REQUESTED) is False

    @pytest.mark.asyncio
    async def test_state_handler(self, fsm):
        """Test state handler is called."""
        handler_called = False

        async def on_connecting():
            nonlocal handler_called
            handler_called = True

        fsm.add_state_handler(State.CONNECTING, on_connecting)
        await fsm.transition(Event.START_REQUESTED)

        assert handler_called is True


class TestSessionLifecycle:
    """Test the session lifecycle table."""

    @pytest.mark.asyncio
    async def test_full_session_flow(self):
        """Test a full session flow."""
        fsm = create_session_fsm()

        await fsm.transition(Event.START_REQUESTED)
        assert fsm.current_state == State.CONNECTING

        await fsm.transition(Event.CONNECTED)
        assert fsm.current_state == State.LIVE

        await fsm.transition(Event.END_REQUESTED)
        assert fsm.current_state == State.ENDING

        await fsm.transition(Event.TEARDOWN_COMPLETE)
        assert fsm.current_state == State.IDLE

    @pytest.mark.asyncio
    async def test_connect_failure_returns_to_idle(self):
        """Test CONNECTING -> IDLE on failure."""
        fsm = create_session_fsm()
        await fsm.transition(Event.START_REQUESTED)

        await fsm.transition(Event.CONNECT_FAILED)

        assert fsm.current_state == State.IDLE

    @pytest.mark.asyncio
    async def test_end_while_connecting(self):
        """Ending is allowed while the transport is still connecting."""
        fsm = create_session_fsm()
        await fsm.transition(Event.START_REQUESTED)

        assert await fsm.transition(Event.END_REQUESTED) is True
        assert fsm.current_state == State.ENDING

        # A late connect result no longer applies
        assert await fsm.transition(Event.CONNECTED) is False
