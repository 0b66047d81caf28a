"""Storage key helpers for output locations."""

import re
from typing import Optional

from domain.models import ProcessingJob

UPLOAD_KEY_PATTERN = re.compile(r'^uploads/([^/]+)/')


def sanitize_path_component(component: str) -> str:
    """Make a user-influenced value safe to embed in a storage key."""
    safe = re.sub(r'[^a-zA-Z0-9\-_.]', '-', component)
    safe = safe.replace('..', '--')
    safe = safe.strip('.')
    return safe.lower()[:100]


def sanitize_branch(branch: str) -> str:
    safe = re.sub(r'[^a-z0-9-]', '-', (branch or '').lower())
    safe = re.sub(r'-+', '-', safe).strip('-')
    return safe or 'main'


def branch_from_key(key: str) -> Optional[str]:
    """Branch encoded in an ``uploads/<branch>/...`` key."""
    match = UPLOAD_KEY_PATTERN.match(key)
    return match.group(1) if match else None


def user_root(branch: str, user_id: str, base: str = "outputs") -> str:
    """Prefix every output of one user lives under."""
    return f"{base.strip('/')}/{sanitize_branch(branch)}/users/{sanitize_path_component(user_id)}/"


def output_prefix(job: ProcessingJob, base: Optional[str] = None) -> str:
    """
    Output prefix for a job.

    ``<base>/<branch>/<template>/<assembly>/`` or, for jobs with a user,
    ``<base>/<branch>/users/<user>/<template>/<assembly>/``.
    """
    base = (base or "outputs").strip('/')
    template = sanitize_path_component(job.template_id)
    assembly = sanitize_path_component(job.assembly_id)
    if job.user:
        return f"{user_root(job.branch, job.user.user_id, base)}{template}/{assembly}/"
    return f"{base}/{sanitize_branch(job.branch)}/{template}/{assembly}/"
