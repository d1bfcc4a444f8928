from sunbeam.logging import (
    _add_correlation_id,
    _redact_credentials,
    get_correlation_id,
    set_correlation_id,
)


class TestRedaction:
    def test_credential_fields_masked(self):
        event = _redact_credentials(
            None,
            "info",
            {
                "event": "frostpaw_refresh",
                "client_secret": "supersecretvalue",
                "access_token": "Frostpaw.abcdef",
                "claw": "deadbeefcafe",
                "Authorization": "Bearer xyz123",
            },
        )
        assert event["event"] == "frostpaw_refresh"
        assert event["client_secret"] == "su***ue"
        assert event["access_token"] == "Fr***ef"
        assert event["claw"] == "de***fe"
        assert event["Authorization"] == "Be***23"

    def test_short_values_fully_masked(self):
        assert _redact_credentials(None, "info", {"token": "abc"})["token"] == "***"

    def test_other_fields_untouched(self):
        event = _redact_credentials(
            None, "info", {"event": "x", "client_id": "squirrelflight", "user_id": 42, "error_code": "NotFound"}
        )
        assert event == {"event": "x", "client_id": "squirrelflight", "user_id": 42, "error_code": "NotFound"}


class TestCorrelationId:
    def test_explicit_id_is_bound(self):
        assert set_correlation_id("req-42") == "req-42"
        assert get_correlation_id() == "req-42"
        assert _add_correlation_id(None, "info", {"event": "x"})["correlation_id"] == "req-42"

    def test_generated_when_missing(self):
        cid = set_correlation_id(None)
        assert cid
        assert get_correlation_id() == cid
