"""
Session engine.

Components:
- ChallengeGenerator: builds one round's stimulus from a level
- PhaseStateMachine: show / input / feedback timing for each round
- AdaptiveDifficultyController: next level from answer streaks
- MetricsAggregator: accuracy, reaction time and span
- SessionLifecycleManager: start, checkpoint, complete, abandon
- RecoveryLocator: find and rehydrate unfinished sessions
- GameEngine: wires the above around one SessionContext
"""

from neuroplay.engine.clock import Clock, ManualClock, SystemClock
from neuroplay.engine.difficulty import AdaptiveDifficultyController, StreakTracker
from neuroplay.engine.errors import (
    CheckpointWriteFailure,
    ConflictError,
    EngineError,
    GenerationFallback,
    SessionClosedError,
    SessionNotFoundError,
    StartWriteFailure,
    StoreError,
    UnknownGameError,
)
from neuroplay.engine.game_engine import GameEngine, RecoveryOffer, SessionContext
from neuroplay.engine.generator import ChallengeGenerator
from neuroplay.engine.lifecycle import SessionLifecycleManager
from neuroplay.engine.metrics import MetricsAggregator
from neuroplay.engine.models import (
    AttemptRecord,
    BehavioralMetric,
    Challenge,
    ChallengeItem,
    EngineState,
    GameDomain,
    MatchMode,
    Phase,
    SessionRecord,
    SessionStatus,
)
from neuroplay.engine.phases import PhaseEvent, PhaseStateMachine, RoundOutcome, RoundResult
from neuroplay.engine.profiles import GameProfile, get_profile, list_profiles, register_profile
from neuroplay.engine.recovery import RecoveryLocator, rehydrate

__all__ = [
    # Clock
    "Clock",
    "ManualClock",
    "SystemClock",
    # Models
    "AttemptRecord",
    "BehavioralMetric",
    "Challenge",
    "ChallengeItem",
    "EngineState",
    "GameDomain",
    "MatchMode",
    "Phase",
    "SessionRecord",
    "SessionStatus",
    # Profiles
    "GameProfile",
    "get_profile",
    "list_profiles",
    "register_profile",
    # Components
    "AdaptiveDifficultyController",
    "ChallengeGenerator",
    "MetricsAggregator",
    "PhaseEvent",
    "PhaseStateMachine",
    "RecoveryLocator",
    "RoundOutcome",
    "RoundResult",
    "SessionLifecycleManager",
    "StreakTracker",
    "rehydrate",
    # Orchestration
    "GameEngine",
    "RecoveryOffer",
    "SessionContext",
    # Errors
    "CheckpointWriteFailure",
    "ConflictError",
    "EngineError",
    "GenerationFallback",
    "SessionClosedError",
    "SessionNotFoundError",
    "StartWriteFailure",
    "StoreError",
    "UnknownGameError",
]
