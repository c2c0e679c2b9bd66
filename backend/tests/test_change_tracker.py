"""Tests for diffing, change classification and event derivation."""
from datetime import date, datetime

from caseflow.engine.change_tracker import FieldChange, diff, differs, filter_update
from caseflow.engine.changes import (
    AssignmentChanged,
    CategoryChanged,
    Escalated,
    GenericUpdate,
    PriorityChanged,
    Resolved,
    StatusChanged,
    UpdateMetadata,
    classify,
)
from caseflow.services.notification_dispatcher import (
    CaseAssigned,
    CaseEscalated,
    CaseResolved,
    CaseStatusChanged,
    NotificationDraft,
    dedupe_recipients,
    derive_priority,
    events_for_changes,
)


def test_filter_update_drops_null_empty_and_id():
    assert filter_update({"id": 3, "title": "", "status_id": None, "tags": "a", "is_public": False}) == {
        "tags": "a",
        "is_public": False,
    }


def test_diff_reports_only_changed_fields():
    existing = {"title": "Old", "status_id": 1, "tags": "x"}
    changes = diff(existing, {"title": "New", "status_id": 1, "tags": None})
    assert changes == {"title": FieldChange(from_="Old", to="New")}


def test_diff_against_orm_like_object():
    class Row:
        title = "Same"
        location = None

    changes = diff(Row(), {"title": "Same", "location": "Village hall"})
    assert changes == {"location": FieldChange(from_=None, to="Village hall")}


def test_dates_compare_by_calendar_day():
    stored = datetime(2026, 3, 14, 9, 30)
    assert not differs(stored, "2026-03-14")
    assert not differs(stored, datetime(2026, 3, 14, 23, 59))
    assert not differs(stored, date(2026, 3, 14))
    assert differs(stored, "2026-03-15")
    assert differs(None, datetime(2026, 3, 14))


def test_unparseable_date_string_compares_as_value():
    assert differs(datetime(2026, 3, 14), "not a date")


def test_empty_proposal_has_no_changes():
    assert diff({"title": "Old"}, {}) == {}


# ---------------------------------------------------------------------------
# classify
# ---------------------------------------------------------------------------

def test_classify_splits_significant_and_generic():
    classified = classify(
        {
            "status_id": FieldChange(1, 2),
            "assigned_to": FieldChange(None, 11),
            "priority_id": FieldChange(3, 1),
            "category_id": FieldChange(1, 2),
            "title": FieldChange("Old", "New"),
            "tags": FieldChange(None, "water"),
        }
    )
    kinds = [type(c) for c in classified]
    assert kinds == [StatusChanged, AssignmentChanged, PriorityChanged, CategoryChanged, GenericUpdate]
    assert len(classified) == 5
    assert classified.generic.fields == ["title", "tags"]


def test_classify_many_generic_fields_make_one_entry():
    classified = classify({f"field_{i}": FieldChange(i, i + 1) for i in range(12)})
    assert classified.significant == ()
    assert len(classified) == 1


def test_escalation_only_counts_when_level_rises():
    assert classify({"escalation_level": FieldChange(0, 1)}).significant == (
        Escalated(old_level=0, new_level=1),
    )
    lowered = classify({"escalation_level": FieldChange(2, 1)})
    assert lowered.significant == ()
    assert lowered.generic.fields == ["escalation_level"]


def test_resolution_only_when_first_set():
    when = datetime(2026, 3, 14)
    assert classify({"resolved_date": FieldChange(None, when)}).significant == (
        Resolved(resolved_at=when),
    )
    moved = classify({"resolved_date": FieldChange(when, datetime(2026, 3, 15))})
    assert moved.significant == ()
    assert moved.generic is not None


def test_no_changes_classify_to_nothing():
    classified = classify({})
    assert len(classified) == 0
    assert list(classified) == []


# ---------------------------------------------------------------------------
# Events and recipients
# ---------------------------------------------------------------------------

def test_events_for_changes():
    classified = classify(
        {
            "status_id": FieldChange(1, 3),
            "assigned_to": FieldChange(9, 11),
            "escalation_level": FieldChange(0, 1),
            "resolved_date": FieldChange(None, datetime(2026, 3, 14)),
            "priority_id": FieldChange(3, 2),
            "category_id": FieldChange(1, 2),
        }
    )
    events = events_for_changes(
        classified,
        UpdateMetadata(escalation_reason="No response", resolution_summary="Pump fixed"),
    )
    assert events == [
        CaseStatusChanged(old_status=1, new_status=3),
        CaseAssigned(previous_assignee=9, new_assignee=11),
        CaseEscalated(level=1, reason="No response", reassigned_to=11),
        CaseResolved(summary="Pump fixed"),
    ]


def test_generic_changes_notify_nobody():
    assert events_for_changes(classify({"title": FieldChange("a", "b")})) == []


def _draft(user_id, title="t"):
    return NotificationDraft(
        user_id=user_id,
        type="generic",
        title=title,
        message="m",
        priority="normal",
        action_text="View",
        trigger_action="test",
    )


def test_dedupe_recipients_excludes_actor_and_repeats():
    drafts = [_draft(5, "first"), _draft(7), _draft(5, "second"), _draft(11)]
    kept = dedupe_recipients(drafts, actor_id=7)
    assert [(d.user_id, d.title) for d in kept] == [(5, "first"), (11, "t")]


def test_derive_priority():
    assert derive_priority(1) == "urgent"
    assert derive_priority(2) == "urgent"
    assert derive_priority(3) == "high"
    assert derive_priority(4) == "normal"
    assert derive_priority(5) == "low"
    assert derive_priority("Critical") == "urgent"
    assert derive_priority("high") == "high"
    assert derive_priority("low") == "low"
    assert derive_priority(None) == "normal"
    assert derive_priority("medium") == "normal"
