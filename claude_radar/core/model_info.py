"""
Model identification.

Maps raw model identifiers from the logs to model families.
"""

from dataclasses import dataclass
from enum import Enum
from functools import lru_cache


class ModelType(Enum):
    """Claude model families."""
    OPUS = "opus"
    SONNET = "sonnet"
    HAIKU = "haiku"
    UNKNOWN = "unknown"

    @property
    def tier(self) -> int:
        """Relative tier used to break ties (higher is more capable)."""
        return _TIERS[self]


_TIERS = {
    ModelType.OPUS: 3,
    ModelType.SONNET: 2,
    ModelType.HAIKU: 1,
    ModelType.UNKNOWN: 0,
}


@dataclass(frozen=True)
class ModelInfo:
    """Display information for a model family."""
    type: ModelType
    display_name: str
    short_name: str


MODEL_INFO = {
    ModelType.OPUS: ModelInfo(ModelType.OPUS, "Claude Opus", "Opus"),
    ModelType.SONNET: ModelInfo(ModelType.SONNET, "Claude Sonnet", "Sonnet"),
    ModelType.HAIKU: ModelInfo(ModelType.HAIKU, "Claude Haiku", "Haiku"),
    ModelType.UNKNOWN: ModelInfo(ModelType.UNKNOWN, "Unknown Model", "Unknown"),
}

# Release-date suffixes of Sonnet snapshots without the family name
_SONNET_SNAPSHOTS = ("20241022", "20240620")


@lru_cache(maxsize=None)
def identify_model(model: str) -> ModelType:
    """Resolve a raw model string to its family.

    Results are memoized for the process lifetime since the rules are static.

    Args:
        model: Raw model identifier, e.g. ``claude-sonnet-4-20250514``

    Returns:
        ModelType for the identifier (UNKNOWN when unrecognized or empty)
    """
    normalized = model.strip().lower()

    for model_type in (ModelType.OPUS, ModelType.SONNET, ModelType.HAIKU):
        if model_type.value in normalized:
            return model_type

    # Older identifiers without a family name
    if "claude-3" in normalized:
        return ModelType.SONNET
    if any(snapshot in normalized for snapshot in _SONNET_SNAPSHOTS):
        return ModelType.SONNET

    return ModelType.UNKNOWN


def model_info(model_type: ModelType) -> ModelInfo:
    return MODEL_INFO[model_type]
