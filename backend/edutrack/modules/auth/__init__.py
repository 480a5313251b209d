from edutrack.modules.auth.principal import Principal, resolve_principal
from edutrack.modules.auth.authorization import (
    Action, Target, TargetKind, Decision, decide, authorize, require_roles,
)

__all__ = [
    "Principal",
    "resolve_principal",
    "Action",
    "Target",
    "TargetKind",
    "Decision",
    "decide",
    "authorize",
    "require_roles",
]
