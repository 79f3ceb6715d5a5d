"""Optimistic concurrency for versioned rows.

Every versioned resource (ownerships, threshold adjustments, usernames)
goes through ``update_versioned``: the caller supplies how to load the
row, which column values it wants, and how to render the version tag.
The write is a single ``UPDATE ... WHERE id = :id AND version = :version``
so a concurrent writer that got there first turns into PreconditionFailed
instead of a lost update.
"""

from collections.abc import Awaitable, Callable
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Any

import structlog
from sqlalchemy import update
from sqlalchemy.ext.asyncio import AsyncSession

from roomcomfort.core.metrics import record_precondition_failure
from roomcomfort.services.errors import (
    NotFoundError,
    PreconditionFailedError,
    PreconditionRequiredError,
)

logger = structlog.get_logger()


def format_etag(*parts: Any) -> str:
    """Render a strong entity tag from its key parts and version."""
    return '"' + "-".join(str(part) for part in parts) + '"'


def _strip_tag(tag: str) -> str:
    tag = tag.strip()
    if tag.startswith("W/"):
        tag = tag[2:]
    return tag.strip().strip('"')


def etag_matches(header: str | None, current: str) -> bool:
    """Check an If-Match / If-None-Match header value against a tag.

    Accepts a comma separated list, ``*``, and tags with or without quotes.
    """
    if header is None:
        return False
    wanted = _strip_tag(current)
    for candidate in header.split(","):
        candidate = candidate.strip()
        if not candidate:
            continue
        if candidate == "*" or _strip_tag(candidate) == wanted:
            return True
    return False


def has_precondition(header: str | None) -> bool:
    return header is not None and header.strip() != ""


@dataclass
class VersionedUpdateResult:
    """Outcome of a conditional update."""

    entity: Any
    etag: str
    changed: bool


async def update_versioned(
    db: AsyncSession,
    *,
    resource: str,
    load: Callable[[], Awaitable[Any | None]],
    changes: Callable[[Any], dict[str, Any]],
    etag_of: Callable[[Any], str],
    if_match: str | None,
    require_match: bool = True,
    commit: bool = True,
) -> VersionedUpdateResult:
    """Apply ``changes`` to a versioned row if ``if_match`` is current.

    Args:
        db: Session the row is loaded and written through.
        resource: Name used in errors, logs and metric labels.
        load: Coroutine returning the row, or None when absent.
        changes: Maps the loaded row to the column values wanted.
        etag_of: Renders the version tag of a row.
        if_match: Client supplied precondition.
        require_match: Reject a missing precondition with 428.
        commit: Commit the write. When False the change stays in the open
            transaction for the caller to commit with its other writes.

    Returns:
        The refreshed row and its tag. When every wanted value equals the
        stored one nothing is written and the tag is unchanged.

    Raises:
        NotFoundError: ``load`` returned None.
        PreconditionRequiredError: No tag and ``require_match`` is set.
        PreconditionFailedError: Tag mismatch, or a concurrent writer
            bumped the version between the read and the write. The open
            transaction is rolled back in that case.
    """
    entity = await load()
    if entity is None:
        raise NotFoundError(f"{resource} not found")

    current = etag_of(entity)

    if not has_precondition(if_match):
        if require_match:
            record_precondition_failure(resource, "missing")
            raise PreconditionRequiredError("If-Match header is required")
    elif not etag_matches(if_match, current):
        record_precondition_failure(resource, "mismatch")
        logger.info(
            "Precondition failed",
            resource=resource,
            expected=if_match,
            current=current,
        )
        raise PreconditionFailedError(f"{resource} was modified by another request")

    values = {
        key: value
        for key, value in changes(entity).items()
        if getattr(entity, key) != value
    }
    if not values:
        return VersionedUpdateResult(entity=entity, etag=current, changed=False)

    model = type(entity)
    stmt = (
        update(model)
        .where(model.id == entity.id, model.version == entity.version)
        .values(
            **values,
            version=model.version + 1,
            updated_at=datetime.now(timezone.utc),
        )
        .execution_options(synchronize_session=False)
    )
    result = await db.execute(stmt)

    if result.rowcount == 0:
        await db.rollback()
        record_precondition_failure(resource, "race")
        logger.info("Concurrent update lost", resource=resource, current=current)
        raise PreconditionFailedError(f"{resource} was modified by another request")

    if commit:
        await db.commit()
    await db.refresh(entity)

    new_tag = etag_of(entity)
    logger.info("Versioned update applied", resource=resource, etag=new_tag)
    return VersionedUpdateResult(entity=entity, etag=new_tag, changed=True)
