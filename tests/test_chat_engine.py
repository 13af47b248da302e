from __future__ import annotations

from pathlib import Path

import pytest

from deskmate.bridge.contracts import ChatMessage, Document, SearchResult
from deskmate.nlp.chat import ChatEngine, with_knowledge_context


def _hit(name: str, snippet: str) -> SearchResult:
    document = Document(id=name, name=name, category="default", content=snippet, created_at="2026-01-01")
    return SearchResult(document=document, relevance=0.9, snippet=snippet)


def test_knowledge_context_is_prepended_as_system_message() -> None:
    calls: list[tuple[str, int]] = []

    def search(query: str, limit: int) -> list[SearchResult]:
        calls.append((query, limit))
        return [_hit("handbook.md", "Holidays are booked in the HR portal.")]

    messages = [ChatMessage(role="user", content="How do I book holidays?")]
    prepared = with_knowledge_context(messages, search, 3)

    assert calls == [("How do I book holidays?", 3)]
    assert prepared[0].role == "system"
    assert "Reference [handbook.md]: Holidays are booked in the HR portal." in prepared[0].content
    assert prepared[1:] == messages


def test_no_hits_or_failing_search_leaves_messages_untouched() -> None:
    messages = [ChatMessage(role="user", content="hi")]

    def broken(query: str, limit: int) -> list[SearchResult]:
        raise RuntimeError("index locked")

    assert with_knowledge_context(messages, lambda q, n: [], 3) == messages
    assert with_knowledge_context(messages, broken, 3) == messages
    assert with_knowledge_context(messages, None, 3) == messages


def test_fallback_reply_without_model() -> None:
    engine = ChatEngine(None)
    reply = engine.reply([ChatMessage(role="user", content="hello")])
    assert engine.method == "fallback"
    assert reply == "I received your message: hello"


def test_empty_conversation_is_rejected() -> None:
    with pytest.raises(ValueError, match="At least one message"):
        ChatEngine(None).reply([])


def test_llama_reply_receives_prepared_messages(monkeypatch, tmp_path: Path) -> None:
    captured: dict[str, object] = {}

    class FakeLlama:
        def create_chat_completion(self, *, messages, **kwargs):
            captured["messages"] = messages
            captured["kwargs"] = kwargs
            return {"choices": [{"message": {"role": "assistant", "content": "  Book it in the portal. "}}]}

    engine = ChatEngine(
        tmp_path / "model.gguf",
        search=lambda q, n: [_hit("handbook.md", "HR portal")],
    )
    monkeypatch.setattr(engine, "_load_llm", lambda: FakeLlama())

    reply = engine.reply([ChatMessage(role="user", content="holidays?")])

    assert engine.method == "llama-cpp"
    assert reply == "Book it in the portal."
    messages = captured["messages"]
    assert isinstance(messages, list)
    assert messages[0]["role"] == "system"
    assert messages[-1] == {"role": "user", "content": "holidays?"}


def test_missing_model_file_is_reported(tmp_path: Path) -> None:
    engine = ChatEngine(tmp_path / "absent.gguf")
    with pytest.raises((FileNotFoundError, RuntimeError)):
        engine.reply([ChatMessage(role="user", content="hi")])
