"""Tests for chatrelay.callback: keyboard payload encoding."""
from __future__ import annotations

import pytest

from chatrelay import callback
from chatrelay.callback import MAX_PAYLOAD_BYTES, MAX_ROLE_NAME_BYTES, CallbackAction, CallbackData


class TestEncode:

    def test_format(self):
        assert callback.encode(CallbackAction.DELETE_ROLE, "Tutor") == "delete_role Tutor"
        assert callback.encode(CallbackAction.SWITCH_ROLE, "Tutor") == "switch_role Tutor"

    @pytest.mark.parametrize("name", ["", "Math Tutor", "tab\tname"])
    def test_rejects_unencodable_names(self, name):
        with pytest.raises(ValueError):
            callback.encode(CallbackAction.DELETE_ROLE, name)

    def test_longest_allowed_name_fits(self):
        name = "x" * MAX_ROLE_NAME_BYTES
        for action in CallbackAction:
            assert len(callback.encode(action, name).encode("utf-8")) <= MAX_PAYLOAD_BYTES

    def test_too_long_name_rejected(self):
        with pytest.raises(ValueError, match="exceeds"):
            callback.encode(CallbackAction.DELETE_ROLE, "x" * (MAX_ROLE_NAME_BYTES + 1))


class TestDecode:

    @pytest.mark.parametrize("action", list(CallbackAction))
    def test_round_trip(self, action):
        assert callback.decode(callback.encode(action, "Tutor")) == CallbackData(action, "Tutor")

    def test_decoding_ignores_neighbouring_choices(self):
        payloads = [callback.encode(CallbackAction.DELETE_ROLE, n) for n in ("Assistant", "Tutor", "Coder")]
        assert callback.decode(payloads[1]) == CallbackData(CallbackAction.DELETE_ROLE, "Tutor")

    def test_name_after_first_space_is_kept_verbatim(self):
        assert callback.decode("switch_role a b") == CallbackData(CallbackAction.SWITCH_ROLE, "a b")

    @pytest.mark.parametrize("payload", [
        "",
        "delete_role",
        "delete_role ",
        "explode Tutor",
        "Tutor",
        None,
        42,
        b"delete_role Tutor",
    ])
    def test_unrecognized_payloads_decode_to_none(self, payload):
        assert callback.decode(payload) is None
