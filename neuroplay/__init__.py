"""
NeuroPlay: adaptive cognitive game session engine.

Runs timed show/input/feedback rounds, adapts difficulty from answer streaks,
emits behavioral metrics and checkpoints progress so a session can be resumed
after a crash or a closed tab.
"""

__version__ = "1.0.0"
