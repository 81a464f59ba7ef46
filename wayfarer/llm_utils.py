"""Text generation for hints, nudges and chat replies.

The behaviors only see ``TextGenerator.generate(system_prompt, messages)``.
``LLMTextGenerator`` backs it with Mirascope for hosted providers and with a
local Ollama call otherwise. ``generate_or_fallback`` is the seam the
behaviors actually use: generation is slow and fallible, and a failure must
never stop a flow from finishing (and restarting wandering).
"""

from __future__ import annotations

import asyncio
from abc import ABC, abstractmethod
from typing import Any, Callable, Sequence

from mirascope import llm
from tenacity import AsyncRetrying, retry_if_exception_type, stop_after_attempt

from .config import Config
from .local_llm import LocalLLMError, call_ollama_chat
from .logging_utils import log_error, log_llm
from .schemas import ChatTurn


class EmptyCompletionError(RuntimeError):
    """Raised when a provider returns no text at all."""


class TextGenerator(ABC):
    """Opaque, latency-bearing, fallible text generation."""

    @abstractmethod
    async def generate(self, system_prompt: str, messages: Sequence[ChatTurn]) -> str:
        """Return the assistant's reply to ``messages`` under ``system_prompt``."""


def render_transcript(system_prompt: str, messages: Sequence[ChatTurn]) -> str:
    """Flatten a system prompt and transcript into one prompt string.

    A single-turn transcript is passed through as-is; longer ones are labelled
    so the model can tell whose line is whose.
    """

    sections: list[str] = []
    if system_prompt.strip():
        sections.append(system_prompt.strip())
    if len(messages) == 1 and messages[0].role == "user":
        sections.append(messages[0].content.strip())
    elif messages:
        lines = ["Conversation so far:"]
        for turn in messages:
            speaker = "Player" if turn.role == "user" else "You"
            lines.append(f"{speaker}: {turn.content.strip()}")
        lines.append("Reply to the last player message.")
        sections.append("\n".join(lines))
    return "\n\n".join(sections)


class LLMTextGenerator(TextGenerator):
    """Provider-agnostic generator with a bounded retry on empty completions.

    Only ``EmptyCompletionError`` is retried. Network, auth and timeout errors
    propagate immediately; callers fall back instead of waiting on retries.
    """

    def __init__(
        self,
        *,
        llm_provider: str | None = None,
        llm_model: str | None = None,
        max_tokens: int | None = None,
        timeout: float | None = None,
        max_attempts: int = 2,
    ) -> None:
        self.llm_provider = llm_provider or Config.LLM_PROVIDER
        self.llm_model = llm_model or Config.LLM_MODEL
        self.max_tokens = max_tokens or Config.LLM_MAX_TOKENS
        self.timeout = timeout or Config.LLM_TIMEOUT_SECONDS
        self.max_attempts = max_attempts

    async def generate(self, system_prompt: str, messages: Sequence[ChatTurn]) -> str:
        use_local_llm = self.llm_provider.lower() == "ollama"

        remote_invoke: Callable[[str], Any] | None = None
        if not use_local_llm:
            @llm.call(
                provider=self.llm_provider,
                model=self.llm_model,
                call_params={"max_tokens": self.max_tokens},
            )
            async def _invoke(prompt: str) -> str:
                return prompt

            remote_invoke = _invoke

        async for attempt in AsyncRetrying(
            retry=retry_if_exception_type(EmptyCompletionError),
            stop=stop_after_attempt(self.max_attempts),
            reraise=True,
        ):
            with attempt:
                if use_local_llm:
                    try:
                        text = await asyncio.wait_for(
                            call_ollama_chat(
                                system_prompt=system_prompt,
                                messages=messages,
                                llm_model=self.llm_model,
                                base_url=Config.OLLAMA_BASE_URL,
                                timeout=self.timeout,
                            ),
                            timeout=self.timeout,
                        )
                    except LocalLLMError as exc:
                        raise RuntimeError(
                            f"Local LLM provider error ({self.llm_provider}): {exc}"
                        ) from exc
                else:
                    if remote_invoke is None:
                        raise RuntimeError("Remote LLM invoke is not initialized.")
                    response = await asyncio.wait_for(
                        remote_invoke(render_transcript(system_prompt, messages)),
                        timeout=self.timeout,
                    )
                    text = getattr(response, "content", None)

                if not text or not str(text).strip():
                    raise EmptyCompletionError(
                        f"{self.llm_provider}/{self.llm_model} returned an empty completion"
                    )
                return str(text).strip()

        raise RuntimeError("LLM retry mechanism exited unexpectedly")


async def generate_or_fallback(
    generator: TextGenerator,
    *,
    system_prompt: str,
    messages: Sequence[ChatTurn],
    fallback: str,
    scope: str,
) -> str:
    """Generate text, replacing any failure with ``fallback``.

    Args:
        generator: The injected text generator
        system_prompt: System prompt for this kind of message
        messages: Conversation handed to the model
        fallback: Fixed message used when generation fails
        scope: Log prefix (e.g. ``"Help"``) so failures are attributable

    Returns:
        Generated text, or ``fallback``. Never raises for generation errors.
    """

    log_llm(f"[{scope}] Requesting generation ({len(messages)} message(s))")
    try:
        return await generator.generate(system_prompt, messages)
    except asyncio.CancelledError:
        raise
    except Exception as exc:
        log_error(f"[{scope}] Text generation failed, using fallback: {exc}")
        return fallback
