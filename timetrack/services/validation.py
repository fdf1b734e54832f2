"""Input checks shared by the timer and entry services."""
from typing import Optional

from timetrack.config import Settings
from timetrack.errors import ValidationError


def validate_description(description: Optional[str], config: Settings) -> None:
    """Reject descriptions longer than the configured limit."""
    if description is not None and len(description) > config.description_max_length:
        raise ValidationError(
            f"Description cannot exceed {config.description_max_length} characters"
        )


def validate_references(
    task_id: Optional[str],
    project_id: Optional[str],
    config: Settings,
) -> None:
    """Require a task or a project when the deployment asks for one."""
    if config.require_task_or_project and not (task_id or project_id):
        raise ValidationError("A task or a project is required")


def resolve_billable(billable: Optional[bool], config: Settings) -> bool:
    """Apply the deployment-wide billable default."""
    if billable is None:
        return config.default_billable
    return billable
