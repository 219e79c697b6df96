"""Tests for credential sources and URL helpers."""

import json

from research_stream.transport import (
    ChainedCredentialSource,
    EnvCredentialSource,
    StaticCredentialSource,
    StoredSessionCredentialSource,
    default_credential_source,
    redact_url,
    with_token,
)
from research_stream.transport.credentials import extract_access_token


class TestCredentialSources:
    """Tests for token lookup."""

    def test_static(self):
        source = StaticCredentialSource("abc")
        assert source.get_token() == "abc"

        source.update("def")
        assert source.get_token() == "def"

    def test_env(self, monkeypatch):
        monkeypatch.setenv("RESEARCH_AUTH_TOKEN", "from-env")
        assert EnvCredentialSource().get_token() == "from-env"

        monkeypatch.setenv("RESEARCH_AUTH_TOKEN", "")
        assert EnvCredentialSource().get_token() is None

    def test_stored_session(self, tmp_path):
        """Test the token is read from a stored auth session file."""
        path = tmp_path / "session.json"
        path.write_text(json.dumps({"currentSession": {"access_token": "stored"}}))

        assert StoredSessionCredentialSource(path).get_token() == "stored"

    def test_stored_session_missing_or_invalid(self, tmp_path):
        """Test unreadable session files yield no token."""
        assert StoredSessionCredentialSource(tmp_path / "missing.json").get_token() is None

        broken = tmp_path / "broken.json"
        broken.write_text("{not json")
        assert StoredSessionCredentialSource(broken).get_token() is None

    def test_chained_first_wins(self):
        source = ChainedCredentialSource(
            StaticCredentialSource(None),
            StaticCredentialSource("second"),
            StaticCredentialSource("third"),
        )

        assert source.get_token() == "second"

    def test_default_prefers_env(self, monkeypatch, tmp_path):
        path = tmp_path / "session.json"
        path.write_text(json.dumps({"access_token": "stored"}))
        monkeypatch.setenv("RESEARCH_AUTH_SESSION_FILE", str(path))
        monkeypatch.delenv("RESEARCH_AUTH_TOKEN", raising=False)

        assert default_credential_source().get_token() == "stored"

        monkeypatch.setenv("RESEARCH_AUTH_TOKEN", "env")
        assert default_credential_source().get_token() == "env"


class TestExtractAccessToken:
    """Tests for locating tokens in session documents."""

    def test_known_paths(self):
        assert extract_access_token({"access_token": "a"}) == "a"
        assert extract_access_token({"session": {"access_token": "b"}}) == "b"
        assert extract_access_token({"data": {"session": {"access_token": "c"}}}) == "c"

    def test_not_found(self):
        assert extract_access_token({"session": None}) is None
        assert extract_access_token(["access_token"]) is None
        assert extract_access_token({"access_token": ""}) is None


class TestUrlHelpers:
    """Tests for token URL handling."""

    def test_with_token(self):
        assert with_token("ws://h/s", "abc") == "ws://h/s?token=abc"
        assert with_token("ws://h/s?x=1", "abc") == "ws://h/s?x=1&token=abc"
        assert with_token("ws://h/s", None) == "ws://h/s"

    def test_token_is_encoded(self):
        assert with_token("ws://h/s", "a b/c") == "ws://h/s?token=a+b%2Fc"

    def test_redact(self):
        url = with_token("ws://h/s", "secret")

        assert redact_url(url, "secret") == "ws://h/s?token=[TOKEN]"
        assert "a+b%2Fc" not in redact_url(with_token("ws://h/s", "a b/c"), "a b/c")
