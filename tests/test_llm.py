"""
Tests for the LLM generation backends.

No network access: SDK clients are replaced by small fakes and SDK
exceptions by look-alike classes with the same names.

Run with: pytest tests/test_llm.py -v
"""

from types import SimpleNamespace

import pytest

from mdtrans_llms.errors import (
    Blocked,
    CancellationRequested,
    GenerationFailed,
    GenerationUnavailable,
    NotFound,
    PermissionDenied,
)
from mdtrans_llms.translate.base import CancellationToken, ChatMessage
from mdtrans_llms.translate.llm import (
    AnthropicGenerator,
    DeepSeekGenerator,
    LLMConfig,
    OpenAIGenerator,
    map_sdk_error,
)


class APIStatusError(Exception):
    pass


class AuthenticationError(APIStatusError):
    pass


class NotFoundError(APIStatusError):
    pass


class RateLimitError(APIStatusError):
    pass


class FakeCompletions:
    def __init__(self, pieces=None, error=None):
        self.pieces = pieces or []
        self.error = error
        self.calls = []

    def create(self, **kwargs):
        self.calls.append(kwargs)
        if self.error:
            raise self.error
        return iter(
            SimpleNamespace(choices=[SimpleNamespace(delta=SimpleNamespace(content=p))])
            for p in self.pieces
        )


def fake_openai_client(completions):
    return SimpleNamespace(chat=SimpleNamespace(completions=completions))


class FakeAnthropicStream:
    def __init__(self, pieces):
        self.text_stream = iter(pieces)

    def __enter__(self):
        return self

    def __exit__(self, *exc):
        return False


class TestErrorMapping:
    """SDK exceptions map onto the MdTrans error taxonomy."""

    @pytest.mark.parametrize("error,expected", [
        (AuthenticationError("bad key"), PermissionDenied),
        (NotFoundError("no model"), NotFound),
        (RateLimitError("slow down"), Blocked),
        (APIStatusError("500"), GenerationFailed),
        (TimeoutError("read timeout"), GenerationFailed),
    ])
    def test_mapping(self, error, expected):
        mapped = map_sdk_error(error, "openai-gpt-4o")
        assert type(mapped) is expected
        assert "openai-gpt-4o" in str(mapped)

    def test_generic_failure_carries_message(self):
        mapped = map_sdk_error(ValueError("boom"), "anthropic")
        assert "boom" in mapped.user_message


class TestOpenAIGenerator:
    """Tests for the OpenAI streaming backend."""

    def test_missing_key(self, monkeypatch):
        monkeypatch.delenv("OPENAI_API_KEY", raising=False)
        generator = OpenAIGenerator()
        with pytest.raises(GenerationUnavailable):
            generator._require_key()

    def test_key_from_environment(self, monkeypatch):
        monkeypatch.setenv("OPENAI_API_KEY", "sk-env")
        assert OpenAIGenerator().api_key == "sk-env"

    def test_streams_fragments(self):
        completions = FakeCompletions(["Bon", "jour", None, "."])
        generator = OpenAIGenerator(LLMConfig(model="gpt-4o-mini"), api_key="sk-test")
        generator._client = fake_openai_client(completions)

        fragments = list(generator.send([ChatMessage.user("Hello.")]))

        assert fragments == ["Bon", "jour", "."]
        call = completions.calls[0]
        assert call["model"] == "gpt-4o-mini"
        assert call["stream"] is True
        assert call["messages"] == [{"role": "user", "content": "Hello."}]

    def test_sdk_error_mapped(self):
        generator = OpenAIGenerator(api_key="sk-test")
        generator._client = fake_openai_client(FakeCompletions(error=RateLimitError("429")))

        with pytest.raises(Blocked):
            generator.complete([ChatMessage.user("Hello.")])

    def test_cancel_while_streaming(self):
        token = CancellationToken()
        generator = OpenAIGenerator(api_key="sk-test")
        generator._client = fake_openai_client(FakeCompletions(["a", "b", "c"]))

        stream = generator.send([ChatMessage.user("Hello.")], token)
        assert next(stream) == "a"
        token.cancel()
        with pytest.raises(CancellationRequested):
            next(stream)

    def test_deepseek_defaults(self):
        generator = DeepSeekGenerator(api_key="sk-test")
        assert generator.model == "deepseek-chat"
        assert generator.DEFAULT_BASE_URL == "https://api.deepseek.com/v1"
        assert generator.name == "deepseek-deepseek-chat"


class TestAnthropicGenerator:
    """Tests for the Anthropic streaming backend."""

    def test_streams_text(self):
        calls = []

        def stream(**kwargs):
            calls.append(kwargs)
            return FakeAnthropicStream(["Hola", " mundo"])

        generator = AnthropicGenerator(api_key="sk-test")
        generator._client = SimpleNamespace(messages=SimpleNamespace(stream=stream))

        assert generator.complete([ChatMessage.user("Hello world")]) == "Hola mundo"
        assert calls[0]["model"] == generator.model
        assert calls[0]["messages"] == [{"role": "user", "content": "Hello world"}]

    def test_permission_error_mapped(self):
        def stream(**kwargs):
            raise AuthenticationError("invalid x-api-key")

        generator = AnthropicGenerator(api_key="sk-test")
        generator._client = SimpleNamespace(messages=SimpleNamespace(stream=stream))

        with pytest.raises(PermissionDenied):
            generator.complete([ChatMessage.user("Hello")])
