"""Turn state: step log, status transitions and artifact cache."""

from turnwise.turn.artifacts import ArtifactStore, parsed_data_key
from turnwise.turn.state import Step, TurnContext, TurnError, TurnStatus

__all__ = [
    "ArtifactStore",
    "parsed_data_key",
    "Step",
    "TurnContext",
    "TurnError",
    "TurnStatus",
]
