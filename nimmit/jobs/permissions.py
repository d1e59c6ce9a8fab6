"""Who may do what to a job.

Every job mutation goes through :func:`authorize` before anything is
written. Capabilities are granted to relations between the actor and the
job: ``admin`` (any admin), ``owner`` (the client who created the job) and
``assigned`` (the worker currently assigned).
"""

from typing import Dict, FrozenSet, Optional, Tuple

from nimmit.errors import ForbiddenError
from nimmit.users import Actor

ADMIN = "admin"
OWNER = "owner"
ASSIGNED = "assigned"

CAPABILITIES: Dict[str, FrozenSet[str]] = {
    "view": frozenset({ADMIN, OWNER, ASSIGNED}),
    "assign": frozenset({ADMIN}),
    "start": frozenset({ADMIN, ASSIGNED}),
    "submit": frozenset({ADMIN, ASSIGNED}),
    "resubmit": frozenset({ADMIN, ASSIGNED}),
    "complete": frozenset({OWNER}),
    "request_revision": frozenset({OWNER}),
    "cancel": frozenset({ADMIN, OWNER}),
    "message": frozenset({ADMIN, OWNER, ASSIGNED}),
    "progress": frozenset({ASSIGNED}),
    "flag": frozenset({ASSIGNED}),
    "resolve_flag": frozenset({ADMIN}),
}

# (from_status, to_status) -> capability
TRANSITION_CAPABILITIES: Dict[Tuple[str, str], str] = {
    ("pending", "assigned"): "assign",
    ("assigned", "in_progress"): "start",
    ("in_progress", "review"): "submit",
    ("review", "completed"): "complete",
    ("review", "revision"): "request_revision",
    ("revision", "review"): "resubmit",
    ("pending", "cancelled"): "cancel",
    ("assigned", "cancelled"): "cancel",
}


def relations(actor: Actor, job) -> FrozenSet[str]:
    """Relations ``actor`` holds to ``job``."""
    held = set()
    if actor.is_admin:
        held.add(ADMIN)
    if actor.id == job.client_id:
        held.add(OWNER)
    if job.worker_id is not None and actor.id == job.worker_id:
        held.add(ASSIGNED)
    return frozenset(held)


def capability_for(from_status: str, to_status: str) -> Optional[str]:
    return TRANSITION_CAPABILITIES.get((from_status, to_status))


def can(actor: Actor, job, capability: str) -> bool:
    allowed = CAPABILITIES.get(capability, frozenset())
    return bool(allowed & relations(actor, job))


def authorize(actor: Actor, job, capability: str) -> None:
    """Raise ForbiddenError unless ``actor`` holds ``capability`` on ``job``."""
    if capability not in CAPABILITIES:
        raise ValueError(f"Unknown capability: {capability}")
    if not can(actor, job, capability):
        raise ForbiddenError(f"Not allowed to {capability.replace('_', ' ')} this job")
