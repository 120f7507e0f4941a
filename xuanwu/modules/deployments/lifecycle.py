"""Deployment lifecycle rules shared by every store implementation."""
from .errors import InvalidDeploymentUpdateError
from .schemas import DeploymentRecord, DeploymentStatus, DeploymentUpdate, TERMINAL_STATUSES

# Allowed status moves; staying in the same non-terminal status is always allowed
TRANSITIONS: dict[DeploymentStatus, frozenset[DeploymentStatus]] = {
    DeploymentStatus.PENDING: frozenset(
        {DeploymentStatus.BUILDING, DeploymentStatus.DEPLOYING, DeploymentStatus.FAILED}
    ),
    DeploymentStatus.BUILDING: frozenset(
        {DeploymentStatus.DEPLOYING, DeploymentStatus.FAILED}
    ),
    DeploymentStatus.DEPLOYING: frozenset(
        {DeploymentStatus.DEPLOYED, DeploymentStatus.ROLLED_BACK, DeploymentStatus.FAILED}
    ),
}

# Statuses before an image exists / after one must exist
PRE_IMAGE_STATUSES = frozenset({DeploymentStatus.PENDING, DeploymentStatus.BUILDING})
IMAGE_STATUSES = frozenset(
    {DeploymentStatus.DEPLOYING, DeploymentStatus.DEPLOYED, DeploymentStatus.ROLLED_BACK}
)

LOG_FIELDS = ("build_logs", "deploy_logs")


def can_transition(current: DeploymentStatus, target: DeploymentStatus) -> bool:
    """Check whether a status move is allowed."""
    if current in TERMINAL_STATUSES:
        return False
    return target == current or target in TRANSITIONS[current]


def check_consistency(record: DeploymentRecord) -> None:
    """
    Validate the invariants tying status to the other fields.

    Raises:
        InvalidDeploymentUpdateError: If the record is inconsistent
    """
    if record.is_terminal != (record.completed_at is not None):
        raise InvalidDeploymentUpdateError(
            f"Deployment {record.id}: completed_at must be set exactly when the status is terminal "
            f"(status={record.status.value})"
        )
    if record.status in IMAGE_STATUSES and not record.image_url:
        raise InvalidDeploymentUpdateError(
            f"Deployment {record.id}: status {record.status.value} requires an image"
        )
    if record.status in PRE_IMAGE_STATUSES and record.image_url:
        raise InvalidDeploymentUpdateError(
            f"Deployment {record.id}: status {record.status.value} cannot carry an image yet"
        )


def apply_update(current: DeploymentRecord, changes: DeploymentUpdate) -> DeploymentRecord:
    """
    Apply a partial update to a record, enforcing the lifecycle invariants.

    - terminal records never change
    - status only moves forward
    - log fields only grow (the new text must start with the stored text)

    Returns:
        The updated record

    Raises:
        InvalidDeploymentUpdateError: If the update violates an invariant
    """
    if current.is_terminal:
        raise InvalidDeploymentUpdateError(
            f"Deployment {current.id} is {current.status.value} and can no longer change"
        )

    data = changes.model_dump(exclude_unset=True)

    target = data.get("status") or current.status
    if not can_transition(current.status, target):
        raise InvalidDeploymentUpdateError(
            f"Deployment {current.id} cannot move from {current.status.value} to {target.value}"
        )
    data["status"] = target

    for field in LOG_FIELDS:
        if field not in data:
            continue
        previous = getattr(current, field) or ""
        if not (data[field] or "").startswith(previous):
            raise InvalidDeploymentUpdateError(
                f"Deployment {current.id}: {field} may only be appended to"
            )

    updated = current.model_copy(update=data)
    check_consistency(updated)
    return updated


# Position of each status along the lifecycle; terminal statuses share the last one
STATUS_ORDER: dict[DeploymentStatus, int] = {
    DeploymentStatus.PENDING: 0,
    DeploymentStatus.BUILDING: 1,
    DeploymentStatus.DEPLOYING: 2,
    DeploymentStatus.DEPLOYED: 3,
    DeploymentStatus.FAILED: 3,
    DeploymentStatus.ROLLED_BACK: 3,
}


def is_ahead(candidate: DeploymentRecord, reference: DeploymentRecord) -> bool:
    """
    Check whether a snapshot of a record is strictly newer than another.

    Updates only move the status forward and only append to the logs, so a
    later snapshot has a later status, or the same status with more log text.
    """
    if STATUS_ORDER[candidate.status] != STATUS_ORDER[reference.status]:
        return STATUS_ORDER[candidate.status] > STATUS_ORDER[reference.status]
    if reference.is_terminal:
        return False
    return any(
        len(getattr(candidate, field) or "") > len(getattr(reference, field) or "")
        for field in LOG_FIELDS
    )
