import pytest
from pydantic import ValidationError

from scholar.config.settings import Settings
from scholar.scripts.manage import _parse_args
from scholar.src.core.services import build_chat_model


def test_defaults():
    settings = Settings()
    assert settings.CHUNK_SIZE == 1000
    assert settings.CHUNK_OVERLAP == 200
    assert settings.SEARCH_TOP_K == 5
    assert settings.PUBLIC_INDEX_ID == "public-research"
    assert settings.PRIVATE_INDEX_TEMPLATE.format(user_id="u1") == "user-u1-private"
    assert "test-google-key" not in repr(settings)


@pytest.mark.parametrize("field, value", [("CHUNK_SIZE", 10), ("CHUNK_OVERLAP", -1), ("MAX_WORKERS", 0), ("SEARCH_TOP_K", 0), ("LOG_LEVEL", "LOUD")])
def test_rejects_out_of_range(monkeypatch, field, value):
    monkeypatch.setenv(field, str(value))
    with pytest.raises(ValidationError):
        Settings()


def test_missing_secret_is_fatal(monkeypatch):
    monkeypatch.delenv("UPLOAD_SIGNING_KEY")
    with pytest.raises(ValidationError):
        Settings(_env_file=None)


def test_chat_model_uses_configured_sampling():
    llm = build_chat_model()
    assert llm.temperature == pytest.approx(0.3)
    assert llm.max_output_tokens == 1024
    assert llm.top_p == pytest.approx(0.8)
    assert llm.top_k == 40


def test_cli_parses_ask():
    args = _parse_args(["ask", "--user", "u1", "--scope", "private", "What is attention?"])
    assert (args.command, args.user, args.scope, args.question) == ("ask", "u1", "private", "What is attention?")


def test_cli_parses_author_search():
    args = _parse_args(["authors", "--user", "u1", "--search", "vas", "--limit", "3"])
    assert (args.command, args.user, args.search, args.name, args.limit) == ("authors", "u1", "vas", None, 3)
