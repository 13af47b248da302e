from __future__ import annotations

from deskmate.bridge.contracts import SearchResult

KNOWLEDGE_CONTEXT_PROMPT = (
    "You are a helpful desktop assistant. "
    "Use the following knowledge base excerpts when they are relevant to the user's question:\n\n"
    "{context}"
)

FALLBACK_REPLY = "I received your message: {message}"


def render_reference(result: SearchResult) -> str:
    return f"Reference [{result.document.name}]: {result.snippet}"


def knowledge_context_prompt(results: list[SearchResult]) -> str | None:
    if not results:
        return None
    context = "\n\n".join(render_reference(item) for item in results)
    return KNOWLEDGE_CONTEXT_PROMPT.format(context=context)
