from __future__ import annotations

import logging
import os
from pathlib import Path
from typing import Any, Callable

from deskmate.bridge.contracts import ChatMessage, SearchResult
from deskmate.nlp.prompts import FALLBACK_REPLY, knowledge_context_prompt

logger = logging.getLogger(__name__)

SearchFn = Callable[[str, int], list[SearchResult]]


def with_knowledge_context(
    messages: list[ChatMessage],
    search: SearchFn | None,
    limit: int,
) -> list[ChatMessage]:
    """Prepend a system message with knowledge base hits for the last user message."""
    if search is None or not messages or messages[-1].role != "user":
        return list(messages)
    try:
        results = search(messages[-1].content, limit)
    except Exception as exc:
        # Retrieval is best effort; the turn still goes through without context.
        logger.warning("Knowledge base lookup failed: %s", exc)
        return list(messages)
    prompt = knowledge_context_prompt(results)
    if prompt is None:
        return list(messages)
    return [ChatMessage(role="system", content=prompt), *messages]


def fallback_reply(messages: list[ChatMessage]) -> str:
    last = messages[-1].content if messages else ""
    return FALLBACK_REPLY.format(message=last)


class ChatEngine:
    """Answers chat turns with a local GGUF model, or an acknowledgement without one."""

    def __init__(
        self,
        llm_model: Path | None = None,
        *,
        search: SearchFn | None = None,
        context_limit: int = 3,
    ) -> None:
        self.llm_model = llm_model
        self.search = search
        self.context_limit = context_limit
        self._llm: Any = None

    @property
    def method(self) -> str:
        return "llama-cpp" if self.llm_model is not None else "fallback"

    def _load_llm(self) -> Any:
        if self._llm is None:
            try:
                from llama_cpp import Llama  # type: ignore
            except Exception as exc:
                raise RuntimeError(
                    "llama-cpp-python not installed. Install with: pip install -e '.[llm]'"
                ) from exc

            if not self.llm_model.exists():
                raise FileNotFoundError(f"LLM model not found: {self.llm_model}")

            n_threads = max((os.cpu_count() or 4) - 1, 1)
            self._llm = Llama(
                model_path=str(self.llm_model),
                n_ctx=4096,
                n_threads=n_threads,
                verbose=False,
            )
        return self._llm

    def reply(self, messages: list[ChatMessage]) -> str:
        if not messages:
            raise ValueError("At least one message is required.")
        prepared = with_knowledge_context(messages, self.search, self.context_limit)

        if self.llm_model is None:
            return fallback_reply(prepared)

        llm = self._load_llm()
        response = llm.create_chat_completion(
            messages=[item.model_dump() for item in prepared],
            max_tokens=700,
            temperature=0.2,
            top_p=0.9,
        )
        text = (response["choices"][0]["message"]["content"] or "").strip()
        return text or "The model returned an empty reply."
