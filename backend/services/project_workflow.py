"""
Project Workflow State Machine
Defines project states, which transitions each actor may make, and which
transitions notify someone. Single source of truth for lifecycle rules;
project_service.py applies them.
"""
from enum import Enum
from typing import List, Dict, Set


class ProjectStatus(str, Enum):
    QUOTE_GENERATED = "QUOTE_GENERATED"   # Quote materialized, not yet ordered
    SUBMITTED = "SUBMITTED"               # Owner ordered the translation
    IN_PROGRESS = "IN_PROGRESS"           # Translator working
    PROOFREADING = "PROOFREADING"         # Optional review step
    COMPLETED = "COMPLETED"               # Translated file attached


class TransitionType(str, Enum):
    """Who drove a state transition"""
    SYSTEM = "system"
    ADMIN_MANUAL = "admin_manual"
    CUSTOMER_ACTION = "customer_action"


# Owner-driven transitions - whitelist approach
OWNER_TRANSITIONS: Dict[ProjectStatus, List[ProjectStatus]] = {
    ProjectStatus.QUOTE_GENERATED: [ProjectStatus.SUBMITTED],
}

# Values an admin may pick by hand
ADMIN_SETTABLE_STATUSES: Set[ProjectStatus] = {
    ProjectStatus.SUBMITTED,
    ProjectStatus.IN_PROGRESS,
    ProjectStatus.PROOFREADING,
    ProjectStatus.COMPLETED,
}

# Anything before delivery
ACTIVE_STATES: Set[ProjectStatus] = {
    ProjectStatus.QUOTE_GENERATED,
    ProjectStatus.SUBMITTED,
    ProjectStatus.IN_PROGRESS,
    ProjectStatus.PROOFREADING,
}

# Owner may delete only before work starts
OWNER_DELETABLE_STATES: Set[ProjectStatus] = {
    ProjectStatus.QUOTE_GENERATED,
    ProjectStatus.SUBMITTED,
}

# COMPLETED requires a translated file, so it is reached by attaching one
ARTIFACT_REQUIRED_STATES: Set[ProjectStatus] = {
    ProjectStatus.COMPLETED,
}

def is_valid_owner_transition(from_status: ProjectStatus, to_status: ProjectStatus) -> bool:
    return to_status in OWNER_TRANSITIONS.get(from_status, [])


def is_admin_settable(status: ProjectStatus) -> bool:
    return status in ADMIN_SETTABLE_STATUSES


def is_active(status: ProjectStatus) -> bool:
    return status in ACTIVE_STATES


def can_owner_delete(status: ProjectStatus) -> bool:
    return status in OWNER_DELETABLE_STATES


def requires_artifact(status: ProjectStatus) -> bool:
    return status in ARTIFACT_REQUIRED_STATES


# Columns for the admin project board (display order)
PIPELINE_COLUMNS: List[Dict] = [
    {"status": ProjectStatus.QUOTE_GENERATED, "label": "Quote Generated", "color": "gray"},
    {"status": ProjectStatus.SUBMITTED, "label": "Submitted", "color": "blue"},
    {"status": ProjectStatus.IN_PROGRESS, "label": "In Progress", "color": "yellow"},
    {"status": ProjectStatus.PROOFREADING, "label": "Proofreading", "color": "purple"},
    {"status": ProjectStatus.COMPLETED, "label": "Completed", "color": "green"},
]
