from typing import Optional


def humanize(value: Optional[str]) -> str:
    """'manager_reviewed' -> 'Manager Reviewed'."""
    if not value:
        return ""
    return " ".join(part.capitalize() for part in value.replace("-", "_").split("_") if part)
