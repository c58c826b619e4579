# Continuity contracts
from .continuity import (
    BranchContinuityRequest,
    ContinuityDTO,
    CreateContinuityRequest,
    UpdateContinuityRequest,
)

# Event / entity contracts
from .entity import (
    AppliedOutcomeDTO,
    CreateEventRequest,
    DriftCheckDTO,
    EntityDTO,
    EntityResponse,
    EventDTO,
    PropagationResultDTO,
    PropagationWarningDTO,
    UpdateEntityRequest,
)

# Session runs
from .session_run import (
    ActiveSessionRunDTO,
    EndSessionRequest,
    EndSessionRunDTO,
    EndSessionRunRequest,
    GetActiveSessionRunRequest,
    SessionSummaryDTO,
    StartSessionRunRequest,
)

# Quick notes and feedback
from .session_notes import (
    AddQuickNoteRequest,
    QuickNoteDTO,
    RemoveQuickNoteRequest,
    StarsAndWishesDTO,
    StarsAndWishesInput,
)

# Drifts
from .drift import (
    DriftDTO,
    ListDriftsRequest,
    ResolveDriftRequest,
)

__all__ = [
    "BranchContinuityRequest",
    "ContinuityDTO",
    "CreateContinuityRequest",
    "UpdateContinuityRequest",
    "AppliedOutcomeDTO",
    "CreateEventRequest",
    "DriftCheckDTO",
    "EntityDTO",
    "EntityResponse",
    "EventDTO",
    "PropagationResultDTO",
    "PropagationWarningDTO",
    "UpdateEntityRequest",
    "ActiveSessionRunDTO",
    "EndSessionRequest",
    "EndSessionRunDTO",
    "EndSessionRunRequest",
    "GetActiveSessionRunRequest",
    "SessionSummaryDTO",
    "StartSessionRunRequest",
    "AddQuickNoteRequest",
    "QuickNoteDTO",
    "RemoveQuickNoteRequest",
    "StarsAndWishesDTO",
    "StarsAndWishesInput",
    "DriftDTO",
    "ListDriftsRequest",
    "ResolveDriftRequest",
]
