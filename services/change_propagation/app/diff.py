"""
Relevance checks and delta computation for License changes.

Everything here compares value snapshots; nothing relies on object
identity, so two separately decoded images of the same record compare
equal.
"""

from __future__ import annotations

import asyncio
from dataclasses import dataclass, field
from typing import Awaitable, Callable, Iterable, List, Optional, Sequence

import structlog

from shared.schemas.models import AdminAccount, License


logger = structlog.get_logger(__name__)


EmailResolver = Callable[[str], Awaitable[List[str]]]


def is_relevant_license_change(old: Optional[License], new: Optional[License]) -> bool:
    """True when a change touches the fields copied onto Students.

    A deletion is never relevant: there is no new state to copy.
    """
    if new is None:
        return False
    if old is None:
        return True
    return old.expiration != new.expiration or old.features != new.features


def student_templates_changed(old: Optional[License], new: Optional[License]) -> bool:
    """Deep comparison of the student template lists; a missing side is empty."""
    old_templates = old.student_templates if old is not None else []
    new_templates = new.student_templates if new is not None else []
    return old_templates != new_templates


def _unique(values: Iterable[str]) -> List[str]:
    seen = set()
    result = []
    for value in values:
        if value and value not in seen:
            seen.add(value)
            result.append(value)
    return result


@dataclass
class AdminEmailDiff:
    """Emails whose admin association must be revoked or granted."""
    remove_emails: List[str] = field(default_factory=list)
    add_emails: List[str] = field(default_factory=list)


@dataclass
class AdminDelta:
    """Resolved user ids to revoke and grant."""
    remove_ids: List[str] = field(default_factory=list)
    add_ids: List[str] = field(default_factory=list)

    @property
    def empty(self) -> bool:
        return not self.remove_ids and not self.add_ids


def diff_admin_emails(
    old: Optional[License],
    new: Optional[License],
    current_admins: Sequence[AdminAccount],
) -> AdminEmailDiff:
    """Compute which admin emails to revoke and grant.

    - both images: revoke emails that were granted and left the list,
      grant new emails that are not yet associated;
    - deletion: revoke every old email;
    - creation: grant every email not yet associated.
    """
    current_emails = {admin.email for admin in current_admins}

    if old is not None and new is not None:
        new_emails = set(new.admins)
        remove = [email for email in old.admins if email in current_emails and email not in new_emails]
        add = [email for email in new.admins if email not in current_emails]
    elif old is not None:
        remove = list(old.admins)
        add = []
    elif new is not None:
        remove = []
        add = [email for email in new.admins if email not in current_emails]
    else:
        remove, add = [], []

    return AdminEmailDiff(remove_emails=_unique(remove), add_emails=_unique(add))


async def compute_admin_delta(
    old: Optional[License],
    new: Optional[License],
    current_admins: Sequence[AdminAccount],
    resolve: EmailResolver,
) -> AdminDelta:
    """Resolve the admin email diff into user ids.

    Removal ids come from ``current_admins``; addition ids from ``resolve``.
    Emails that resolve to nobody are dropped.
    """
    emails = diff_admin_emails(old, new, current_admins)
    by_email = {admin.email: admin.user_id for admin in current_admins}

    remove_ids = []
    for email in emails.remove_emails:
        user_id = by_email.get(email)
        if user_id is None:
            logger.warning("Admin email has no current association", email=email)
            continue
        remove_ids.append(user_id)

    resolved = await asyncio.gather(*(resolve(email) for email in emails.add_emails))
    add_ids = [user_id for user_ids in resolved for user_id in (user_ids or [])]

    unresolved = [email for email, user_ids in zip(emails.add_emails, resolved) if not user_ids]
    if unresolved:
        logger.info("Admin emails without a registered user", count=len(unresolved))

    return AdminDelta(remove_ids=_unique(remove_ids), add_ids=_unique(add_ids))
