"""
Scheduling domain - conflict-checked booking for a professional's calendar

Engine (pure, no I/O):
- time_range.py    HH:MM parsing, half-open overlaps, local calendar day
- occurrence.py    blocked slot activity per day (recurrence and exceptions)
- overlap.py       competing appointments and blocked slots for a range
- recurrence.py    appointment series expansion
- validator.py     Draft -> Checked -> Accepted | Rejected with a conflict report
- status_sweeper.py  past appointments -> completed, manual transition rules

Integration:
- repository.py    store protocols and SQLAlchemy implementations
- service.py       snapshot, validate and commit under the booking lock
- router.py        FastAPI endpoints under /professionals/{professional_id}
"""
