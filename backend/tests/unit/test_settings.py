"""Unit tests for deltagov.config.settings."""
import pytest
from pydantic import ValidationError

from deltagov.config.settings import DEFAULT_VERSION_CODE_LABELS, DiffGranularity, Settings
from deltagov.services.diff.engine import DiffOptions


def _settings(**kwargs) -> Settings:
    return Settings(_env_file=None, **kwargs)


def test_defaults():
    s = _settings()
    assert s.diff_granularity is DiffGranularity.LINE
    assert s.diff_context_lines == 3
    assert s.diff_size_limit_bytes == 102400
    assert s.diff_full_context_when_unchanged is False
    assert s.congress_api_key is None
    assert s.version_code_labels["IH"] == "Introduced in House"


def test_cors_origins_accepts_comma_separated_string():
    s = _settings(cors_origins="http://a.test, http://b.test")
    assert s.cors_origins == ["http://a.test", "http://b.test"]


def test_production_rejects_debug():
    with pytest.raises(ValidationError):
        _settings(environment="production", debug=True)


@pytest.mark.parametrize("context", [-1, 51])
def test_context_lines_bounds(context):
    with pytest.raises(ValidationError):
        _settings(diff_context_lines=context)


def test_poll_interval_must_not_exceed_wait():
    with pytest.raises(ValidationError):
        _settings(diff_claim_wait_seconds=1, diff_claim_poll_seconds=2)


def test_unknown_fields_are_rejected():
    with pytest.raises(ValidationError):
        _settings(diff_colour="red")


def test_api_key_is_secret():
    s = _settings(congress_api_key="abc123")
    assert "abc123" not in repr(s)
    assert s.congress_api_key.get_secret_value() == "abc123"


def test_diff_options_follow_settings():
    s = _settings(diff_granularity="word", diff_context_lines=5, diff_full_context_when_unchanged=True)
    opts = DiffOptions.from_settings(s)
    assert opts.granularity is DiffGranularity.WORD
    assert opts.context_lines == 5
    assert opts.variant == "word-c5-full"


def test_default_labels_are_not_shared_between_instances():
    first = _settings()
    first.version_code_labels["IH"] = "changed"
    assert _settings().version_code_labels["IH"] == DEFAULT_VERSION_CODE_LABELS["IH"]


def test_ingest_worker_defaults():
    s = _settings()
    assert s.ingest_default_limit == 50
    assert s.ingest_poll_interval_seconds == 3600.0
    with pytest.raises(ValidationError):
        _settings(ingest_poll_interval_seconds=0)
