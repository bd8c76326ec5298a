"""In-house match signup helpers."""

from .dispatcher import UpdateDispatcher, UpdateState
from .engine import CancelOutcome, JoinOutcome, LaneOutcome, RosterEngine, SyncResult
from .errors import (
    AccessForbiddenError,
    InhouseError,
    MissingCredentialError,
    RemoteApiError,
    RenderError,
    StoreError,
)
from .gate import StoreGate
from .models import Lane, LaneGrid, Mode, RosterPolicy, RosterRepository, RosterState
from .render import DisplayPayload, render, render_members
from .storage import DynamoBackend, RosterLayout, RosterRange, RosterStore, SheetsBackend
from .validation import InvalidValueError, parse_mode, parse_recruit_hour

__all__ = [
    "AccessForbiddenError",
    "CancelOutcome",
    "DisplayPayload",
    "DynamoBackend",
    "InhouseError",
    "InvalidValueError",
    "JoinOutcome",
    "Lane",
    "LaneGrid",
    "LaneOutcome",
    "MissingCredentialError",
    "Mode",
    "RemoteApiError",
    "RenderError",
    "RosterEngine",
    "RosterLayout",
    "RosterPolicy",
    "RosterRange",
    "RosterRepository",
    "RosterState",
    "RosterStore",
    "SheetsBackend",
    "StoreError",
    "StoreGate",
    "SyncResult",
    "UpdateDispatcher",
    "UpdateState",
    "parse_mode",
    "parse_recruit_hour",
    "render",
    "render_members",
]
