"""Tests for chatrelay.dialogue: role-creation transitions."""
from __future__ import annotations

import pytest

from chatrelay import dialogue
from chatrelay.dialogue import AwaitingRoleName, AwaitingRoleSystemText, Idle


class TestTransitions:

    def test_start_asks_for_name(self):
        step = dialogue.start()
        assert step.state == AwaitingRoleName()
        assert step.prompt == dialogue.ASK_NAME

    def test_name_moves_to_system_text(self):
        step = dialogue.advance(AwaitingRoleName(), "Tutor")
        assert step.state == AwaitingRoleSystemText("Tutor")
        assert "Tutor" in step.prompt
        assert step.created is None

    def test_name_is_stripped(self):
        step = dialogue.advance(AwaitingRoleName(), "  Tutor\n")
        assert step.state == AwaitingRoleSystemText("Tutor")

    @pytest.mark.parametrize("text", [None, "", "   "])
    def test_missing_name_reprompts(self, text):
        step = dialogue.advance(AwaitingRoleName(), text)
        assert step.state == AwaitingRoleName()
        assert step.prompt == dialogue.ASK_NAME_AGAIN

    @pytest.mark.parametrize("text, reason", [
        ("Math Tutor", "spaces"),
        ("a:b", "':'"),
        ("x" * 80, "too long"),
        ("/whatever", "start with '/'"),
    ])
    def test_invalid_name_reprompts_with_reason(self, text, reason):
        step = dialogue.advance(AwaitingRoleName(), text)
        assert step.state == AwaitingRoleName()
        assert reason in step.prompt

    def test_system_text_completes(self):
        step = dialogue.advance(AwaitingRoleSystemText("Tutor"), "You are a patient math tutor.")
        assert step.state == Idle()
        assert step.created == ("Tutor", "You are a patient math tutor.")

    def test_missing_system_text_reprompts(self):
        step = dialogue.advance(AwaitingRoleSystemText("Tutor"), "")
        assert step.state == AwaitingRoleSystemText("Tutor")
        assert step.created is None
        assert "Tutor" in step.prompt

    def test_idle_ignores_text(self):
        step = dialogue.advance(Idle(), "hello")
        assert step.state == Idle()
        assert step.prompt is None
        assert step.created is None
