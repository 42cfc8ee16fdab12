"""Tests for the notification feed."""

import pytest
import sqlalchemy as sa
from pydantic import ValidationError

from sitebuilder.domain.models import NotificationInput
from sitebuilder.repositories.notifications_repository import (
    create_notification,
    mark_all_read,
    mark_read,
    notifications,
    recent_notifications,
    unread_count,
)
from sitebuilder.schema.entities import metadata

companies = metadata.tables["Companies"]


@pytest.fixture
def db(engine):
    metadata.create_all(engine)
    return engine


@pytest.fixture
def company(db):
    with db.begin() as conn:
        return conn.execute(sa.insert(companies).values(Name="Acme")).inserted_primary_key[0]


@pytest.fixture
def other_company(db):
    with db.begin() as conn:
        return conn.execute(sa.insert(companies).values(Name="Other")).inserted_primary_key[0]


def notify(conn, company_id, title="New contact message", **extra):
    return create_notification(
        conn, NotificationInput(company_id=company_id, type="contact", title=title, **extra)
    )


class TestCreate:
    def test_new_notification_is_unread(self, db, company):
        with db.begin() as conn:
            created = notify(
                conn,
                company,
                data={"contactMessageId": 7},
                related_entity_type="ContactMessage",
                related_entity_id="7",
            )
        assert created["is_read"] is False
        assert created["read_at"] is None
        assert created["data"] == {"contactMessageId": 7}
        assert created["related_entity_id"] == "7"

    def test_title_required(self):
        with pytest.raises(ValidationError):
            NotificationInput(company_id=1, type="contact", title="")


class TestUnreadCount:
    def test_counts_per_company(self, db, company, other_company):
        with db.begin() as conn:
            notify(conn, company)
            notify(conn, company)
            notify(conn, other_company)
            assert unread_count(conn, company_id=company) == 2
            assert unread_count(conn, company_id=other_company) == 1


class TestRecent:
    def test_newest_first(self, db, company):
        with db.begin() as conn:
            for title in ("first", "second", "third"):
                notify(conn, company, title=title)
            titles = [n["title"] for n in recent_notifications(conn, company_id=company)]
        assert titles == ["third", "second", "first"]

    def test_limit_is_clamped(self, db, company):
        with db.begin() as conn:
            for i in range(3):
                notify(conn, company, title=f"n{i}")
            assert len(recent_notifications(conn, company_id=company, limit=0)) == 1
            assert len(recent_notifications(conn, company_id=company, limit=2)) == 2
            assert len(recent_notifications(conn, company_id=company, limit=1000)) == 3

    def test_tenant_scoped(self, db, company, other_company):
        with db.begin() as conn:
            notify(conn, other_company)
            assert recent_notifications(conn, company_id=company) == []


class TestMarkRead:
    def test_sets_read_at_once(self, db, company):
        with db.begin() as conn:
            created = notify(conn, company)
            assert mark_read(conn, company_id=company, notification_id=created["id"])
            first_read = conn.execute(
                sa.select(notifications.c.ReadAt).where(notifications.c.Id == created["id"])
            ).scalar_one()
            assert mark_read(conn, company_id=company, notification_id=created["id"])
            again = conn.execute(
                sa.select(notifications.c.ReadAt).where(notifications.c.Id == created["id"])
            ).scalar_one()
            assert unread_count(conn, company_id=company) == 0
        assert first_read is not None
        assert again == first_read

    def test_other_company_or_missing(self, db, company, other_company):
        with db.begin() as conn:
            created = notify(conn, company)
            assert not mark_read(conn, company_id=other_company, notification_id=created["id"])
            assert not mark_read(conn, company_id=company, notification_id=created["id"] + 100)
            assert unread_count(conn, company_id=company) == 1

    def test_mark_all(self, db, company, other_company):
        with db.begin() as conn:
            notify(conn, company)
            notify(conn, company)
            notify(conn, other_company)
            assert mark_all_read(conn, company_id=company) == 2
            assert mark_all_read(conn, company_id=company) == 0
            assert unread_count(conn, company_id=other_company) == 1
            read_at = conn.execute(
                sa.select(notifications.c.ReadAt).where(notifications.c.CompanyId == company)
            ).scalars().all()
        assert all(value is not None for value in read_at)


class TestCompanyDelete:
    def test_feed_removed_with_company(self, db, company):
        with db.begin() as conn:
            notify(conn, company)
            conn.execute(sa.delete(companies).where(companies.c.Id == company))
            assert conn.execute(sa.select(sa.func.count()).select_from(notifications)).scalar_one() == 0
