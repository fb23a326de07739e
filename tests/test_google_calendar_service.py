"""Tests for the Google Calendar sync collaborator (httpx mocked)."""

import asyncio
from datetime import datetime, timedelta
from unittest.mock import AsyncMock, MagicMock, patch

import pytest
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker
from sqlalchemy.pool import StaticPool

from clinic_scheduler import models
from clinic_scheduler.database import Base
from clinic_scheduler.domain.scheduling.entities import AppointmentStatus, CalendarSyncOp
from clinic_scheduler.models_google_calendar import GoogleCalendarIntegration
from clinic_scheduler.services.google_calendar_service import (
    GoogleCalendarSync,
    build_event_data,
    get_cipher,
)
from conftest import make_appointment

MODULE = "clinic_scheduler.services.google_calendar_service"


@pytest.fixture
def db():
    engine = create_engine("sqlite://", connect_args={"check_same_thread": False}, poolclass=StaticPool)
    Base.metadata.create_all(bind=engine)
    session = sessionmaker(bind=engine)()
    session.add(models.Professional(id="pro-1", full_name="Dr. House"))
    session.add(models.Patient(id="pat-1", professional_id="pro-1", full_name="Ana Gomez"))
    session.commit()
    yield session
    session.close()


def connect(db, expires_in=timedelta(hours=1), auto_sync=True):
    cipher = get_cipher()
    db.add(
        GoogleCalendarIntegration(
            professional_id="pro-1",
            access_token=cipher.encrypt(b"access-123").decode(),
            refresh_token=cipher.encrypt(b"refresh-456").decode(),
            token_expires_at=datetime.utcnow() + expires_in,
            auto_sync_enabled=auto_sync,
        )
    )
    db.commit()


def mock_http(response_json=None, status_code=200):
    """Patch httpx.AsyncClient; returns (patcher, client mock)."""
    response = MagicMock()
    response.status_code = status_code
    response.json.return_value = response_json or {}
    response.text = "error body"

    http = MagicMock()
    http.post = AsyncMock(return_value=response)
    http.put = AsyncMock(return_value=response)
    http.delete = AsyncMock(return_value=response)

    factory = MagicMock()
    factory.return_value.__aenter__ = AsyncMock(return_value=http)
    factory.return_value.__aexit__ = AsyncMock(return_value=False)
    return patch(f"{MODULE}.httpx.AsyncClient", factory), http


class TestBuildEventData:
    def test_local_wall_clock_and_timezone(self) -> None:
        event = build_event_data(make_appointment(notes="x-rays"), "Ana Gomez")
        assert event["summary"] == "Ana Gomez"
        assert event["start"] == {
            "dateTime": "2024-03-04T10:00:00",
            "timeZone": "America/Argentina/Buenos_Aires",
        }
        assert event["end"]["dateTime"] == "2024-03-04T11:00:00"
        assert "Notes: x-rays" in event["description"]

    def test_cancelled_event(self) -> None:
        event = build_event_data(make_appointment(status=AppointmentStatus.CANCELLED), "Ana")
        assert event["status"] == "cancelled"


class TestGoogleCalendarSync:
    def test_not_connected_returns_none(self, db) -> None:
        sync = GoogleCalendarSync(db)
        assert sync.is_connected("pro-1") is False
        assert asyncio.run(sync.sync(make_appointment(), CalendarSyncOp.CREATE)) is None

    def test_auto_sync_disabled(self, db) -> None:
        connect(db, auto_sync=False)
        assert GoogleCalendarSync(db).is_connected("pro-1") is False

    def test_create_posts_event(self, db) -> None:
        connect(db)
        patcher, http = mock_http({"id": "evt-1"})
        with patcher:
            event_id = asyncio.run(
                GoogleCalendarSync(db).sync(make_appointment(subject_ref="pat-1"), CalendarSyncOp.CREATE)
            )
        assert event_id == "evt-1"
        url = http.post.call_args.args[0]
        assert url.endswith("/calendars/primary/events")
        assert http.post.call_args.kwargs["headers"] == {"Authorization": "Bearer access-123"}
        assert http.post.call_args.kwargs["json"]["summary"] == "Ana Gomez"

    def test_update_without_event_id_creates(self, db) -> None:
        connect(db)
        patcher, http = mock_http({"id": "evt-9"})
        with patcher:
            event_id = asyncio.run(GoogleCalendarSync(db).sync(make_appointment(), CalendarSyncOp.UPDATE))
        assert event_id == "evt-9"
        http.put.assert_not_called()

    def test_update_puts_event(self, db) -> None:
        connect(db)
        patcher, http = mock_http({"id": "evt-1"})
        with patcher:
            asyncio.run(GoogleCalendarSync(db).sync(make_appointment(), CalendarSyncOp.UPDATE, "evt-1"))
        assert http.put.call_args.args[0].endswith("/events/evt-1")

    def test_delete(self, db) -> None:
        connect(db)
        patcher, http = mock_http(status_code=204)
        with patcher:
            result = asyncio.run(GoogleCalendarSync(db).sync(make_appointment(), CalendarSyncOp.DELETE, "evt-1"))
        assert result == "evt-1"
        http.delete.assert_awaited_once()

    def test_http_failure_returns_none(self, db) -> None:
        connect(db)
        patcher, _ = mock_http(status_code=500)
        with patcher:
            assert asyncio.run(GoogleCalendarSync(db).sync(make_appointment(), CalendarSyncOp.CREATE)) is None

    def test_expired_token_is_refreshed(self, db) -> None:
        connect(db, expires_in=timedelta(minutes=1))
        patcher, http = mock_http({"access_token": "fresh", "expires_in": 3600, "id": "evt-1"})
        with patcher:
            asyncio.run(GoogleCalendarSync(db).sync(make_appointment(), CalendarSyncOp.CREATE))

        refresh_call, create_call = http.post.call_args_list
        assert refresh_call.kwargs["data"]["grant_type"] == "refresh_token"
        assert refresh_call.kwargs["data"]["refresh_token"] == "refresh-456"
        assert create_call.kwargs["headers"] == {"Authorization": "Bearer fresh"}

        integration = db.query(GoogleCalendarIntegration).first()
        assert get_cipher().decrypt(integration.access_token.encode()) == b"fresh"
