"""Published snapshots repository.

Snapshot rows are immutable once written, except for the IsStale flag:
publishing a page writes version max+1 and marks earlier live versions stale.

Uses SQLAlchemy Core against the target schema metadata (no ORM).
"""

from __future__ import annotations

from datetime import datetime
from typing import Any

import sqlalchemy as sa
from sqlalchemy.engine import Connection

from sitebuilder.domain.models import SnapshotInput
from sitebuilder.infra.time import utc_now
from sitebuilder.schema.entities import metadata

snapshots = metadata.tables["PublishedSnapshots"]


def _row_to_dict(row: Any) -> dict[str, Any]:
    return {
        "id": row.Id,
        "company_id": row.CompanyId,
        "page_id": row.PageId,
        "page_slug": row.PageSlug,
        "page_type": row.PageType,
        "snapshot_data": row.SnapshotData,
        "version": row.Version,
        "is_stale": row.IsStale,
        "published_at": row.PublishedAt,
    }


def next_version(conn: Connection, *, company_id: int, page_id: int) -> int:
    """Return the version number the next snapshot of a page will get."""
    current = conn.execute(
        sa.select(sa.func.max(snapshots.c.Version)).where(
            snapshots.c.CompanyId == company_id,
            snapshots.c.PageId == page_id,
        )
    ).scalar()
    return (current or 0) + 1


def publish_snapshot(
    conn: Connection,
    data: SnapshotInput,
    *,
    published_at: datetime | None = None,
) -> dict[str, Any]:
    """Publish a new snapshot of a page.

    Must run inside a transaction; the unique (PageId, Version) index rejects
    a concurrent publish that computed the same version.

    Args:
        conn: Connection in an open transaction.
        data: Snapshot contents.
        published_at: Publication time (defaults to now).

    Returns:
        Dict with the created snapshot fields.
    """
    version = next_version(conn, company_id=data.company_id, page_id=data.page_id)
    conn.execute(
        sa.update(snapshots)
        .where(
            snapshots.c.CompanyId == data.company_id,
            snapshots.c.PageId == data.page_id,
            snapshots.c.IsStale.is_(False),
        )
        .values(IsStale=True)
    )
    moment = published_at or utc_now()
    result = conn.execute(
        sa.insert(snapshots).values(
            CompanyId=data.company_id,
            PageId=data.page_id,
            PageSlug=data.page_slug,
            PageType=data.page_type,
            SnapshotData=data.snapshot_data,
            Version=version,
            IsStale=False,
            PublishedAt=moment,
            CreatedAt=moment,
        )
    )
    snapshot_id = result.inserted_primary_key[0]
    row = conn.execute(sa.select(snapshots).where(snapshots.c.Id == snapshot_id)).one()
    return _row_to_dict(row)


def latest_snapshot(
    conn: Connection,
    *,
    company_id: int,
    page_slug: str,
) -> dict[str, Any] | None:
    """Get the live snapshot for a page slug.

    Args:
        conn: Database connection.
        company_id: Company identifier (tenant isolation).
        page_slug: Public page slug.

    Returns:
        Snapshot dict or None if the page was never published.
    """
    row = conn.execute(
        sa.select(snapshots)
        .where(
            snapshots.c.CompanyId == company_id,
            snapshots.c.PageSlug == page_slug,
            snapshots.c.IsStale.is_(False),
        )
        .order_by(snapshots.c.Version.desc())
        .limit(1)
    ).first()
    return _row_to_dict(row) if row else None
