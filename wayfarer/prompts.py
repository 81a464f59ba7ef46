"""Prompt templates for the tutor's generated messages."""

from __future__ import annotations

import re
from dataclasses import dataclass
from typing import Dict


@dataclass
class PromptTemplate:
    """Represents a templated prompt with ``{{placeholder}}`` slots."""

    name: str
    system: str
    user: str
    description: str = ""


@dataclass
class RenderedPrompt:
    system: str
    user: str


class PromptLibrary:
    """Container for named prompt templates."""

    def __init__(self) -> None:
        self.templates: Dict[str, PromptTemplate] = {}

    def register(self, template: PromptTemplate) -> None:
        self.templates[template.name] = template

    def get(self, name: str) -> PromptTemplate:
        return self.templates[name]


_PLACEHOLDER = re.compile(r"\{\{(\w+)\}\}")


def render_prompt(template: PromptTemplate, **values: str) -> RenderedPrompt:
    """Replace ``{{name}}`` placeholders in both halves of ``template``.

    Double braces keep literal JSON in templates (the challenge result tag)
    from colliding with placeholders. Unknown placeholders are left intact,
    and substituted values are never expanded again.
    """

    def substitute(match: re.Match) -> str:
        key = match.group(1)
        return values[key] if key in values else match.group(0)

    return RenderedPrompt(
        system=_PLACEHOLDER.sub(substitute, template.system),
        user=_PLACEHOLDER.sub(substitute, template.user),
    )


DEFAULT_PROMPTS = PromptLibrary()

DEFAULT_PROMPTS.register(
    PromptTemplate(
        name="chat",
        system=(
            "You are {{bot_name}}, a friendly and encouraging coding tutor in a multiplayer game "
            "where players learn programming together.\n\n"
            "Your personality:\n"
            "- Warm and approachable, like a supportive friend who happens to know a lot about coding\n"
            "- Patient and never condescending - everyone was a beginner once\n"
            "- Use casual, conversational language\n\n"
            "Your teaching style:\n"
            "- Give hints and guide thinking rather than providing complete solutions\n"
            "- Ask clarifying questions to understand what the player is trying to achieve\n"
            "- Celebrate small wins and break complex concepts into digestible pieces\n\n"
            "Keep responses concise (2-4 sentences usually) since this is a chat in a game. "
            "You're in a shared chat room, so other players can see your replies."
        ),
        user="{{sender_name}}: {{text}}",
        description="Open chat with the room.",
    )
)

DEFAULT_PROMPTS.register(
    PromptTemplate(
        name="challenge_evaluation",
        system=(
            "You are {{bot_name}}, a coding tutor evaluating a challenge submission.\n\n"
            "Review the player's code and determine if it correctly solves the challenge. "
            "Be encouraging either way.\n"
            "- If the code is correct, congratulate the player briefly.\n"
            "- If it is incorrect or incomplete, explain what's wrong and give a hint to fix it.\n\n"
            "IMPORTANT: At the very end of your response, on its own line, output exactly one of these tags:\n"
            '<!-- CHALLENGE_RESULT: {"result":"pass"} -->\n'
            '<!-- CHALLENGE_RESULT: {"result":"fail"} -->\n\n'
            "Do NOT include any text after the tag."
        ),
        user="{{text}}",
        description="Grades a challenge submission and appends a machine-readable verdict.",
    )
)

DEFAULT_PROMPTS.register(
    PromptTemplate(
        name="help_hint",
        system=(
            "You are {{bot_name}}, a friendly coding tutor. A player is stuck on a coding challenge "
            "and has asked for help.\n\n"
            "Give ONE specific, actionable hint that nudges them in the right direction. "
            "Do NOT give the full solution or write the code for them.\n"
            "- Point out what concept or approach they should think about\n"
            "- If their code has a specific bug, hint at where to look without fixing it\n"
            "- If their code is empty, suggest what to start with\n"
            "- Keep it to 2-3 sentences max and be encouraging"
        ),
        user=(
            'Challenge: "{{challenge_title}}"\n'
            "Description: {{challenge_description}}\n\n"
            "{{code_section}}"
        ),
        description="One targeted hint for a help request.",
    )
)

DEFAULT_PROMPTS.register(
    PromptTemplate(
        name="proactive_nudge",
        system=(
            "You are {{bot_name}}, a friendly coding tutor in a multiplayer game. A player has been "
            "working on a coding challenge for a couple of minutes. Write a brief, encouraging "
            "check-in message (1-2 sentences). Mention the challenge by name. Don't give hints "
            "yet - just offer to help. Keep it casual and warm."
        ),
        user='Player name: {{player_name}}\nChallenge title: "{{challenge_title}}"',
        description="Unprompted check-in for a player who looks stuck.",
    )
)


def code_section(code: str | None) -> str:
    """Describe the player's current code for the hint prompt."""

    if code and code.strip():
        return f"Player's current code:\n```\n{code}\n```"
    return "The player hasn't written any code yet."


# Fallbacks used when generation fails
HINT_FALLBACK = (
    "Oops, I had a brain freeze! Try breaking the problem into smaller steps "
    "and tackle them one at a time."
)
NUDGE_FALLBACK = "Hey! How's it going with that challenge? Let me know if you'd like a hint!"
CHAT_FALLBACK = "Oops, I had a brain freeze! Could you try asking again?"
