"""Unit tests for deltagov.config.logging_config processors."""
from deltagov.config.logging_config import REDACTED, redact_api_key, service_context
from deltagov.config.settings import Settings


def test_api_key_is_scrubbed_from_urls():
    event = {
        "event": "congress_request_failed",
        "error": "ConnectError for https://api.congress.gov/v3/bill?api_key=s3cret&format=json",
        "count": 3,
    }
    out = redact_api_key(None, "warning", event)
    assert "s3cret" not in out["error"]
    assert f"api_key={REDACTED}&format=json" in out["error"]
    assert out["count"] == 3


def test_service_context_does_not_override_bound_values():
    settings = Settings(_env_file=None, environment="testing", app_version="9.9.9")
    add_identity = service_context(settings)

    out = add_identity(None, "info", {"event": "x", "env": "custom"})
    assert out["service"] == "deltagov"
    assert out["version"] == "9.9.9"
    assert out["env"] == "custom"
