"""Version bumps and optimistic updates for broadcast rows.

Every broadcast row carries a ``version``. Bumps happen in SQL so two concurrent
requests never publish different contents under the same version, and list
columns are written with a compare-and-set on the version that was read.
"""

from __future__ import annotations

import logging
from collections.abc import Callable
from typing import Any, TypeVar

from sqlalchemy import update
from sqlalchemy.ext.asyncio import AsyncSession

from stackpulse.db.base import Base
from stackpulse.errors import ConcurrentUpdateError

logger = logging.getLogger(__name__)

M = TypeVar("M", bound=Base)

MAX_ATTEMPTS = 5


async def bump_version(db: AsyncSession, model: type[Base], *criteria: Any) -> None:  # noqa: ANN401
    """Increment ``version`` on every row of ``model`` matching ``criteria``."""
    await db.execute(
        update(model)
        .where(*criteria)
        .values(version=model.version + 1)  # type: ignore[attr-defined]
        .execution_options(synchronize_session=False)
    )


async def update_versioned(
    db: AsyncSession,
    row: M,
    mutate: Callable[[M], dict[str, Any]],
) -> bool:
    """Write ``mutate(row)`` and bump the version, guarded by the version ``row`` was read at.

    ``mutate`` computes the new column values from the current row and may raise a
    domain error; an empty dict means nothing to change. When another request
    updated the row in between, the row is reloaded and ``mutate`` runs again.
    Returns whether a write happened; ``row`` is refreshed afterwards.

    Raises ConcurrentUpdateError when the row keeps changing.
    """
    model = type(row)
    for attempt in range(MAX_ATTEMPTS):
        if attempt:
            await db.refresh(row)
        values = mutate(row)
        if not values:
            return False
        result = await db.execute(
            update(model)
            .where(model.id == row.id, model.version == row.version)  # type: ignore[attr-defined]
            .values(version=model.version + 1, **values)  # type: ignore[attr-defined]
            .execution_options(synchronize_session=False)
        )
        if result.rowcount:  # type: ignore[attr-defined]
            await db.refresh(row)
            return True
        logger.info("Version conflict on %s %s, retrying", model.__tablename__, row.id)  # type: ignore[attr-defined]

    raise ConcurrentUpdateError(f"{model.__tablename__} {row.id} changed concurrently, try again")  # type: ignore[attr-defined]
