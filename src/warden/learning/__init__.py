"""Learning: append-only learning records and per-agent experience memory."""

from warden.learning.experience import Experience, ExperienceMemory
from warden.learning.recorder import (
    InMemoryLearningStore,
    JsonlLearningStore,
    LearningRecord,
    LearningRecorder,
)

__all__ = [
    "Experience",
    "ExperienceMemory",
    "InMemoryLearningStore",
    "JsonlLearningStore",
    "LearningRecord",
    "LearningRecorder",
]
