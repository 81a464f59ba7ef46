"""Chat replies and challenge evaluation."""

from __future__ import annotations

import json
import re
from collections import deque
from dataclasses import dataclass
from typing import Deque, Optional

from .llm_utils import TextGenerator
from .logging_utils import log_error, log_info, log_llm, log_success
from .prompts import CHAT_FALLBACK, DEFAULT_PROMPTS, PromptLibrary, render_prompt
from .schemas import ChatMessage, ChatResponse, ChatTurn
from .transport import TOPIC_CHAT_RESPONSE, Publisher, publish_payload

MAX_HISTORY = 20

_RESULT_TAG = re.compile(r"<!--\s*CHALLENGE_RESULT:\s*(\{[^}]+\})\s*-->\s*$")


@dataclass
class ChallengeVerdict:
    clean_text: str
    result: Optional[str]


def parse_challenge_result(text: str) -> ChallengeVerdict:
    """Strip a trailing ``<!-- CHALLENGE_RESULT: {...} -->`` tag.

    Returns the text without the tag and ``"pass"``/``"fail"``, or the
    original text and ``None`` when the tag is missing or malformed.
    """

    match = _RESULT_TAG.search(text)
    if not match:
        return ChallengeVerdict(clean_text=text, result=None)
    try:
        parsed = json.loads(match.group(1))
    except json.JSONDecodeError:
        return ChallengeVerdict(clean_text=text, result=None)

    result = parsed.get("result") if isinstance(parsed, dict) else None
    if result not in ("pass", "fail"):
        result = None
    return ChallengeVerdict(clean_text=text[: match.start()].rstrip(), result=result)


class ChatResponder:
    """Answers room chat with a rolling history, and grades submissions.

    Challenge submissions are evaluated in isolation and never enter the
    conversation history.
    """

    def __init__(
        self,
        publisher: Publisher,
        generator: TextGenerator,
        *,
        bot_name: str,
        prompts: Optional[PromptLibrary] = None,
        max_history: int = MAX_HISTORY,
    ) -> None:
        self.publisher = publisher
        self.generator = generator
        self.bot_name = bot_name
        self.prompts = prompts or DEFAULT_PROMPTS
        self.history: Deque[ChatTurn] = deque(maxlen=max_history)

    async def handle(self, message: ChatMessage, sender_name: str) -> None:
        is_challenge = message.challenge_id is not None
        suffix = f" [challenge: {message.challenge_id}]" if is_challenge else ""
        log_info(f"[Chat] {sender_name}: {message.text}{suffix}")

        if is_challenge:
            rendered = render_prompt(
                self.prompts.get("challenge_evaluation"),
                bot_name=self.bot_name,
                text=message.text,
            )
            messages = [ChatTurn(role="user", content=rendered.user)]
        else:
            rendered = render_prompt(
                self.prompts.get("chat"),
                bot_name=self.bot_name,
                sender_name=sender_name,
                text=message.text,
            )
            self.history.append(ChatTurn(role="user", content=rendered.user))
            messages = list(self.history)

        try:
            log_llm(f"[Chat] Generating reply to {message.message_id}")
            raw_text = await self.generator.generate(rendered.system, messages)
        except Exception as exc:
            log_error(f"[Chat] Failed to generate response: {exc}")
            await self._publish(
                ChatResponse(
                    id=f"{message.message_id}-error",
                    message_id=message.message_id,
                    text=CHAT_FALLBACK,
                    sender_name=self.bot_name,
                )
            )
            return

        text = raw_text
        result = None
        if is_challenge:
            verdict = parse_challenge_result(raw_text)
            text, result = verdict.clean_text, verdict.result
            log_info(f"[Challenge] {message.challenge_id}: {result or 'no result parsed'}")
        else:
            self.history.append(ChatTurn(role="assistant", content=text))

        await self._publish(
            ChatResponse(
                id=f"{message.message_id}-response",
                message_id=message.message_id,
                text=text,
                sender_name=self.bot_name,
                challenge_id=message.challenge_id,
                challenge_result=result,
            )
        )
        log_success(f'[Chat] Sent: "{text[:50]}..."')

    async def _publish(self, payload: ChatResponse) -> None:
        try:
            await publish_payload(self.publisher, TOPIC_CHAT_RESPONSE, payload, reliable=True)
        except Exception as exc:
            log_error(f"[Chat] Failed to publish response {payload.id}: {exc}")
