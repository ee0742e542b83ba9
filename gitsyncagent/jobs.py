"""Helpers for Kubernetes job objects."""

from __future__ import annotations

from typing import Any, Mapping

JOB_COMPLETE = "Complete"
JOB_FAILED = "Failed"


def is_job_finished(job: Mapping[str, Any]) -> tuple[bool, bool]:
    """Return (finished, succeeded) from a job's status conditions."""
    conditions = (job.get("status") or {}).get("conditions") or []
    for condition in conditions:
        if condition.get("status") != "True":
            continue
        if condition.get("type") == JOB_COMPLETE:
            return True, True
        if condition.get("type") == JOB_FAILED:
            return True, False
    return False, False