"""Concurrent behaviors that move the bot around the grid."""

from .wander import WanderState, WanderTask, pick_random_destination, publish_walk
from .stuck import StuckDetectionTask, find_stuck_session
from .approach import ApproachCoordinator

__all__ = [
    "WanderState",
    "WanderTask",
    "pick_random_destination",
    "publish_walk",
    "StuckDetectionTask",
    "find_stuck_session",
    "ApproachCoordinator",
]
