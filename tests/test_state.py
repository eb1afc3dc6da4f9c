"""Tests for the session state machine."""

import pytest

from cp_debugger.session.state import SessionState, SessionStateMachine, can_transition


class TestTransitions:
    @pytest.mark.parametrize(
        "current,new",
        [
            (SessionState.IDLE, SessionState.STARTING),
            (SessionState.STARTING, SessionState.READY),
            (SessionState.READY, SessionState.RUNNING),
            (SessionState.RUNNING, SessionState.STOPPED),
            (SessionState.STOPPED, SessionState.RUNNING),
            (SessionState.RUNNING, SessionState.EXITED),
            (SessionState.STOPPED, SessionState.EXITED),
            (SessionState.EXITED, SessionState.RUNNING),
            (SessionState.TERMINATED, SessionState.STARTING),
        ],
    )
    def test_allowed(self, current, new):
        assert can_transition(current, new)

    @pytest.mark.parametrize(
        "current,new",
        [
            (SessionState.IDLE, SessionState.RUNNING),
            (SessionState.STARTING, SessionState.STOPPED),
            (SessionState.EXITED, SessionState.STOPPED),
            (SessionState.READY, SessionState.EXITED),
        ],
    )
    def test_refused(self, current, new):
        assert not can_transition(current, new)

    @pytest.mark.parametrize("current", list(SessionState))
    def test_terminated_from_anywhere(self, current):
        assert can_transition(current, SessionState.TERMINATED)


class TestSessionStateMachine:
    def test_starts_idle(self):
        sm = SessionStateMachine()
        assert sm.state == SessionState.IDLE
        assert not sm.is_active

    def test_walk(self):
        sm = SessionStateMachine()
        assert sm.transition(SessionState.STARTING)
        assert sm.is_active
        assert sm.transition(SessionState.READY)
        assert sm.transition(SessionState.RUNNING)
        assert sm.transition(SessionState.STOPPED)
        assert sm.transition(SessionState.TERMINATED)
        assert not sm.is_active

    def test_same_state_is_noop(self):
        sm = SessionStateMachine()
        sm.transition(SessionState.STARTING)
        assert not sm.transition(SessionState.STARTING)
        assert sm.state == SessionState.STARTING

    def test_invalid_is_refused(self):
        sm = SessionStateMachine()
        assert not sm.transition(SessionState.STOPPED)
        assert sm.state == SessionState.IDLE

    def test_exited_is_still_active(self):
        sm = SessionStateMachine()
        for state in (
            SessionState.STARTING,
            SessionState.READY,
            SessionState.RUNNING,
            SessionState.EXITED,
        ):
            sm.transition(state)
        assert sm.is_active
