"""
Wayfarer - an autonomous tutor bot for shared 2D grid worlds.

The bot wanders a tile map, walks over to players who ask for help (or who
look stuck at a challenge terminal) and answers chat with generated text.

Transport-agnostic: the host injects a Publisher and feeds inbound packets
to BotSession.handle_data. Text generation is injected too.
"""

__version__ = "0.1.0"

# Per-room entry point
from .session import BotSession

# Configuration
from .config import BehaviorTiming, Config

# Grid, search and movement
from .environment import (
    Direction,
    GridCell,
    WalkPlan,
    find_adjacent_cell,
    find_path,
    plan_walk,
)

# Behaviors
from .behaviors import (
    ApproachCoordinator,
    StuckDetectionTask,
    WanderState,
    WanderTask,
)
from .chat import ChatResponder, parse_challenge_result
from .cancellation import CancellationToken, cancellable_sleep, run_cancellable

# State and wire
from .world import MapInfo, TrackedSession, WorldState
from .transport import InMemoryPublisher, Publisher
from .llm_utils import LLMTextGenerator, TextGenerator
from .prompts import DEFAULT_PROMPTS, PromptLibrary, PromptTemplate

__all__ = [
    # Entry point
    "BotSession",
    # Configuration
    "BehaviorTiming",
    "Config",
    # Environment
    "Direction",
    "GridCell",
    "WalkPlan",
    "find_adjacent_cell",
    "find_path",
    "plan_walk",
    # Behaviors
    "ApproachCoordinator",
    "StuckDetectionTask",
    "WanderState",
    "WanderTask",
    "ChatResponder",
    "parse_challenge_result",
    # Cancellation
    "CancellationToken",
    "cancellable_sleep",
    "run_cancellable",
    # State
    "MapInfo",
    "TrackedSession",
    "WorldState",
    # Interfaces
    "Publisher",
    "InMemoryPublisher",
    "TextGenerator",
    "LLMTextGenerator",
    "PromptLibrary",
    "PromptTemplate",
    "DEFAULT_PROMPTS",
]
