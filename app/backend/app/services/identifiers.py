"""Sequential, parent-scoped human-readable identifiers (PRO-001, MOD-002, ...)."""

from __future__ import annotations

import logging
import re
from uuid import UUID

from sqlalchemy.orm import InstrumentedAttribute

from app.core.config import get_settings
from app.repositories.hierarchy_repository import HierarchyRepository

logger = logging.getLogger(__name__)

_TRAILING_NUMBER = re.compile(r"(\d+)$")


def format_custom_id(prefix: str, number: int, *, width: int | None = None) -> str:
    if width is None:
        width = get_settings().custom_id_width
    return f"{prefix}-{number:0{width}d}"


def next_custom_id(
    repo: HierarchyRepository,
    model: type,
    prefix: str,
    *,
    parent_column: InstrumentedAttribute | None = None,
    parent_id: UUID | None = None,
) -> str:
    """Return the identifier following the last one issued under ``prefix``.

    Must run in the same transaction as the insert that uses the result.
    """

    last_id = repo.last_custom_id(model, prefix, parent_column=parent_column, parent_id=parent_id)
    if last_id is None:
        next_id = format_custom_id(prefix, 1)
        logger.debug("No previous %s identifiers for %s; starting at %s", model.__tablename__, prefix, next_id)
        return next_id

    match = _TRAILING_NUMBER.search(last_id)
    if match is None:
        logger.warning("Could not parse numeric suffix from %s; starting %s at 1", last_id, prefix)
        return format_custom_id(prefix, 1)

    next_id = format_custom_id(prefix, int(match.group(1)) + 1)
    logger.debug("Generated %s after %s", next_id, last_id)
    return next_id
