"""Tests for the booking validator and its conflict report."""

from datetime import date

import pytest

from clinic_scheduler.domain.scheduling.entities import (
    BlockedSlotRecurrence,
    RecurrenceFrequency,
    RecurrenceRule,
)
from clinic_scheduler.domain.scheduling.errors import InvalidFormat
from clinic_scheduler.domain.scheduling.occurrence import is_active_on
from clinic_scheduler.domain.scheduling.recurrence import expand
from clinic_scheduler.domain.scheduling.validator import (
    BookingCandidate,
    BookingRequest,
    BookingState,
    BookingValidator,
    ConflictSource,
    build_candidate,
    weekday_policy,
)
from conftest import PROFESSIONAL_ID, make_appointment, make_blocked_slot


def request(start="10:30", end="11:30", day="2024-03-04", **fields) -> BookingRequest:
    return BookingRequest(
        professional_id=PROFESSIONAL_ID, date=day, start_time=start, end_time=end, **fields
    )


@pytest.fixture
def validator() -> BookingValidator:
    return BookingValidator()


class TestBuildCandidate:
    def test_end_time_from_duration(self) -> None:
        candidate = build_candidate(request(end=None, duration_minutes=45, start="09:00"))
        assert candidate.end_time == "09:45"

    def test_end_time_wins_over_duration(self) -> None:
        candidate = build_candidate(request(start="09:00", end="10:00", duration_minutes=15))
        assert candidate.end_time == "10:00"

    def test_missing_end_and_duration_is_malformed(self) -> None:
        with pytest.raises(InvalidFormat):
            build_candidate(request(end=None))

    def test_start_after_end_is_malformed(self) -> None:
        with pytest.raises(InvalidFormat):
            build_candidate(request(start="12:00", end="11:00"))

    def test_request_normalizes_timestamp_date(self) -> None:
        assert request(day="2024-03-05T01:30:00Z").date == date(2024, 3, 4)

    def test_candidate_and_request_validate_alike(self, validator) -> None:
        draft = request(start="09:00", end="10:00")
        from_draft = validator.validate(draft, [], [])
        from_candidate = validator.validate(build_candidate(draft), [], [])
        assert isinstance(build_candidate(draft), BookingCandidate)
        assert from_draft.state is from_candidate.state is BookingState.ACCEPTED

    def test_only_terminal_states(self) -> None:
        assert {state.value for state in BookingState} == {"accepted", "rejected"}


class TestScenarios:
    """End-to-end behavior of the validator on small calendars."""

    def test_rejected_booking_reports_the_competing_appointment(self, validator) -> None:
        appointments = [make_appointment(id="a1", start_time="10:00", end_time="11:00")]
        decision = validator.validate(request("10:30", "11:30"), appointments, [])

        assert decision.state is BookingState.REJECTED
        assert len(decision.report.entries) == 1
        entry = decision.report.entries[0]
        assert entry.source is ConflictSource.APPOINTMENT
        assert entry.source_id == "a1"
        assert (entry.start_time, entry.end_time) == ("10:00", "11:00")

    def test_back_to_back_is_accepted(self, validator) -> None:
        appointments = [make_appointment(start_time="10:00", end_time="11:00")]
        decision = validator.validate(request("11:00", "12:00"), appointments, [])
        assert decision.state is BookingState.ACCEPTED
        assert decision.accepted
        assert not decision.report.has_conflicts

    def test_blocked_slot_reported_first(self, validator) -> None:
        appointments = [make_appointment(id="a1", start_time="10:00", end_time="10:30")]
        slots = [make_blocked_slot(id="hol", start_time="09:00", end_time="12:00", reason="Holiday")]
        decision = validator.validate(request("10:00", "10:30"), appointments, slots)

        assert decision.state is BookingState.REJECTED
        sources = [e.source for e in decision.report.entries]
        assert sources == [ConflictSource.BLOCKED_SLOT, ConflictSource.APPOINTMENT]
        assert decision.report.entries[0].label == "Holiday"

    def test_editing_never_conflicts_with_itself(self, validator) -> None:
        appointments = [make_appointment(id="x", start_time="10:00", end_time="11:00")]
        decision = validator.validate(request("10:15", "11:15", exclude_id="x"), appointments, [])
        assert decision.accepted

    def test_exception_precedence(self) -> None:
        slot = make_blocked_slot(
            date="2024-06-03",
            start_time="09:00",
            end_time="10:00",
            recurrence=BlockedSlotRecurrence.WEEKLY,
            exceptions=["2024-06-10"],
        )
        assert is_active_on(slot, "2024-06-10") is False
        assert is_active_on(slot, "2024-06-17") is True

    def test_recurrence_bound(self) -> None:
        rule = RecurrenceRule(frequency=RecurrenceFrequency.WEEKLY, interval=1, count=3)
        base = make_appointment(date="2024-01-01", recurrence_rule=rule)
        assert [a.date for a in expand(base)] == [
            date(2024, 1, 1),
            date(2024, 1, 8),
            date(2024, 1, 15),
        ]

    def test_cancelled_appointment_does_not_block(self, validator) -> None:
        appointments = [make_appointment(status="cancelled")]
        assert validator.validate(request("10:00", "11:00"), appointments, []).accepted

    def test_accepts_candidate_directly(self, validator) -> None:
        candidate = BookingCandidate(
            professional_id=PROFESSIONAL_ID, date="2024-03-04", start_time="08:00", end_time="09:00"
        )
        assert validator.validate(candidate, [make_appointment()], []).accepted


class TestBusinessDayPolicy:
    def test_weekday_policy_rejects_sunday(self) -> None:
        validator = BookingValidator(business_day_policy=weekday_policy(range(0, 6)))
        decision = validator.validate(request(day="2024-03-10"), [], [])
        assert decision.state is BookingState.REJECTED
        assert [e.source for e in decision.report.entries] == [ConflictSource.POLICY]
        assert "Sunday" in decision.report.entries[0].label

    def test_policy_failure_short_circuits(self) -> None:
        validator = BookingValidator(business_day_policy=lambda day: False)
        appointments = [make_appointment(date="2024-03-04", start_time="10:00", end_time="11:00")]
        decision = validator.validate(request("10:30", "11:30"), appointments, [])
        assert len(decision.report.entries) == 1

    def test_all_weekdays_means_no_policy(self) -> None:
        assert weekday_policy(range(7)) is None
        assert weekday_policy([]) is None


class TestConflictReport:
    def test_summary_lists_every_entry(self, validator) -> None:
        appointments = [
            make_appointment(id="a1", start_time="10:00", end_time="11:00", subject_ref="Ana"),
            make_appointment(id="a2", start_time="11:00", end_time="12:00", subject_ref="Luis"),
        ]
        decision = validator.validate(request("10:30", "11:30"), appointments, [])
        summary = decision.report.summary()
        assert summary.splitlines()[0] == "2 conflict(s) found:"
        assert "Appointment 10:00-11:00: Ana" in summary
        assert "Appointment 11:00-12:00: Luis" in summary

    def test_empty_summary(self, validator) -> None:
        decision = validator.validate(request(), [], [])
        assert decision.report.summary() == "No conflicts"

    def test_subject_resolver_labels_entries(self) -> None:
        validator = BookingValidator(subject_resolver=lambda appt: f"Patient {appt.subject_ref}")
        appointments = [make_appointment(subject_ref="p-7")]
        decision = validator.validate(request("10:00", "11:00"), appointments, [])
        assert decision.report.entries[0].label == "Patient p-7"
