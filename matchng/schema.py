from typing import Any, Dict, List

from .models import JobStatus, UserRole

REQUIRED_PROFILE_FIELDS = ["id"]
REQUIRED_JOB_FIELDS = ["id", "employerId", "title", "industry"]
LIST_FIELDS = ["skills", "savedJobIds", "appliedJobIds", "requiredSkills"]
BOOL_FIELDS = ["relocatePreference", "remotePreference", "isRemote"]
LOCATION_STR_FIELDS = ["state", "city", "lga"]


def _is_non_empty_str(v: Any) -> bool:
    return isinstance(v, str) and v.strip() != ""


def _check_common(data: Dict[str, Any], errors: List[str]) -> None:
    for f in LIST_FIELDS:
        if f in data and data[f] is not None:
            value = data[f]
            if not isinstance(value, list) or not all(_is_non_empty_str(v) for v in value):
                errors.append(f"Field '{f}' must be a list of non-empty strings")

    for f in BOOL_FIELDS:
        if f in data and not isinstance(data[f], bool):
            errors.append(f"Field '{f}' must be a boolean if provided")

    location = data.get("location")
    if location is not None:
        if not isinstance(location, dict):
            errors.append("Field 'location' must be an object")
        else:
            for f in LOCATION_STR_FIELDS:
                if f in location and not isinstance(location[f], str):
                    errors.append(f"Field 'location.{f}' must be a string if provided")


def validate_profile(data: Dict[str, Any]) -> List[str]:
    """
    Returns a list of validation error messages. Empty list means valid.
    """
    errors: List[str] = []

    for f in REQUIRED_PROFILE_FIELDS:
        if f not in data:
            errors.append(f"Missing required field: {f}")
        elif not _is_non_empty_str(data[f]):
            errors.append(f"Field '{f}' must be a non-empty string")

    role = data.get("role")
    if role is not None and role not in {r.value for r in UserRole}:
        errors.append(f"Field 'role' must be one of {', '.join(r.value for r in UserRole)}")

    _check_common(data, errors)
    return errors


def validate_job(data: Dict[str, Any]) -> List[str]:
    """
    Returns a list of validation error messages. Empty list means valid.
    """
    errors: List[str] = []

    for f in REQUIRED_JOB_FIELDS:
        if f not in data:
            errors.append(f"Missing required field: {f}")
        elif not _is_non_empty_str(data[f]):
            errors.append(f"Field '{f}' must be a non-empty string")

    status = data.get("status")
    if status is not None and status not in {s.value for s in JobStatus}:
        errors.append(f"Field 'status' must be one of {', '.join(s.value for s in JobStatus)}")

    _check_common(data, errors)
    return errors
