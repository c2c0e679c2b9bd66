"""
Tests for the case repository: create, update, soft delete, workflow
operations and search.

Side effects run in the background; every test drains the supervisor before
looking at history or notification rows.
"""
import asyncio
from datetime import timedelta

import pytest

from caseflow.core.errors import ConflictError, MissingRequiredFields, NotFound, ValidationError
from caseflow.models import Case
from caseflow.services.case_repository import NO_CHANGES_MESSAGE

from conftest import (
    ACTOR,
    ADMIN,
    ASSIGNEE,
    CATEGORY_CONDUCT,
    CHANNEL_PHONE,
    MANAGER,
    NOW,
    PRIORITY_CRITICAL,
    PRIORITY_HIGH,
    PRIORITY_LOW,
    STAFF_B,
    STATUS_IN_PROGRESS,
    STATUS_NEW,
    STATUS_RESOLVED,
    SUBMITTER,
    SUPERVISORS,
    case_fields,
    stored_notifications,
)


async def _history(case_engine, case_id, action_type=None):
    page = await case_engine.history.get_history(case_id, action_type=action_type)
    return page.items


async def _create(case_engine, actor_id=ACTOR, comments=None, **overrides):
    case = await case_engine.cases.create(case_fields(**overrides), actor_id, comments=comments)
    await case_engine.side_effects.drain()
    return case


async def _insert_stale_case(case_engine, case_number):
    """A case created two days ago that nonetheless holds today's case number."""
    async with case_engine.session_factory() as session:
        session.add(
            Case(
                case_number=case_number,
                title="Imported",
                description="Imported from the old register",
                case_date=NOW - timedelta(days=2),
                category_id=1,
                priority_id=3,
                status_id=STATUS_NEW,
                channel_id=1,
                created_at=NOW - timedelta(days=2),
                updated_at=NOW - timedelta(days=2),
            )
        )
        await session.commit()


# ---------------------------------------------------------------------------
# Create
# ---------------------------------------------------------------------------

@pytest.mark.asyncio
async def test_create_assigns_sequential_case_numbers(case_engine):
    first = await _create(case_engine)
    second = await _create(case_engine, title="Second")
    assert first.case_number == "CS-20260314-0001"
    assert second.case_number == "CS-20260314-0002"


@pytest.mark.asyncio
async def test_create_fills_defaults(case_engine):
    case = await _create(case_engine)
    assert case.created_by == ACTOR
    assert case.updated_by == ACTOR
    assert case.created_at == NOW
    assert case.case_date == NOW
    assert case.submitted_at == NOW
    assert case.last_activity_date == NOW
    assert case.escalation_level == 0
    assert case.confidentiality_level == "internal"
    assert case.is_deleted is False
    assert case.is_active is True


@pytest.mark.asyncio
async def test_create_defaults_submitter_to_actor(case_engine):
    fields = case_fields()
    del fields["submitted_by"]
    case = await case_engine.cases.create(fields, ACTOR)
    assert case.submitted_by == ACTOR


@pytest.mark.asyncio
async def test_create_ignores_supplied_case_number(case_engine):
    case = await _create(case_engine, case_number="MINE-1")
    assert case.case_number == "CS-20260314-0001"


@pytest.mark.asyncio
async def test_create_reports_every_missing_field(case_engine):
    fields = case_fields(title="")
    del fields["channel_id"]
    with pytest.raises(MissingRequiredFields) as exc_info:
        await case_engine.cases.create(fields, ACTOR)
    assert exc_info.value.fields == ["title", "channel_id"]


@pytest.mark.asyncio
async def test_create_rejects_invalid_values(case_engine):
    with pytest.raises(ValidationError) as exc_info:
        await case_engine.cases.create(case_fields(gps_lat="91"), ACTOR)
    assert exc_info.value.field == "gps_lat"
    result = await case_engine.cases.search({})
    assert result.pagination.total == 0


@pytest.mark.asyncio
async def test_create_retries_taken_case_number(case_engine):
    await _insert_stale_case(case_engine, "CS-20260314-0001")
    case = await _create(case_engine)
    assert case.case_number == "CS-20260314-0002"


@pytest.mark.asyncio
async def test_retry_continues_after_highest_number_of_the_day(case_engine):
    for seq in range(1, 4):
        await _insert_stale_case(case_engine, f"CS-20260314-{seq:04d}")
    case = await _create(case_engine)
    assert case.case_number == "CS-20260314-0004"


@pytest.mark.asyncio
async def test_create_gives_up_after_max_attempts(case_engine, monkeypatch):
    await _insert_stale_case(case_engine, "CS-20260314-0001")
    attempts = []

    async def always_taken(session, now, attempt):
        attempts.append(attempt)
        return "CS-20260314-0001"

    monkeypatch.setattr(case_engine.cases, "_next_case_number", always_taken)
    with pytest.raises(ConflictError):
        await case_engine.cases.create(case_fields(), ACTOR)
    assert attempts == [0, 1, 2, 3, 4]


@pytest.mark.asyncio
async def test_concurrent_creates_get_consecutive_numbers(case_engine):
    cases = await asyncio.gather(
        *(case_engine.cases.create(case_fields(title=f"Report {i}"), ACTOR) for i in range(5))
    )
    await case_engine.side_effects.drain()
    assert sorted(c.case_number for c in cases) == [
        f"CS-20260314-{seq:04d}" for seq in range(1, 6)
    ]


@pytest.mark.asyncio
async def test_create_records_creation_history(case_engine):
    case = await _create(case_engine, comments="Reported at the community meeting")
    entries = await _history(case_engine, case.id)
    assert len(entries) == 1
    entry = entries[0]
    assert entry.action_type == "CREATION"
    assert entry.new_value == str(STATUS_NEW)
    assert entry.comments == "Reported at the community meeting"
    assert entry.created_by == ACTOR


@pytest.mark.asyncio
async def test_create_notifies_active_supervisors(case_engine, sender):
    case = await _create(case_engine)
    notifications = await stored_notifications(case_engine, case_id=case.id)
    assert {n.user_id for n in notifications} == SUPERVISORS
    assert all(n.type == "generic" for n in notifications)
    # Medium priority is level 3
    assert all(n.priority == "high" for n in notifications)
    assert all(n.trigger_user_id == ACTOR for n in notifications)
    assert sorted(sender.sent) == sorted(n.id for n in notifications)


@pytest.mark.asyncio
async def test_create_with_assignee(case_engine):
    case = await _create(case_engine, assigned_to=ASSIGNEE)
    assert case.assigned_by == ACTOR
    assert case.assigned_at == NOW

    assigned = await stored_notifications(case_engine, user_id=ASSIGNEE)
    assert [n.type for n in assigned] == ["case_assigned"]
    assert assigned[0].metadata_["case_number"] == case.case_number


@pytest.mark.asyncio
async def test_create_assignee_who_is_supervisor_gets_one_notification(case_engine):
    case = await _create(case_engine, assigned_to=MANAGER)
    notifications = await stored_notifications(case_engine, case_id=case.id)
    assert sorted((n.user_id, n.type) for n in notifications) == [
        (MANAGER, "case_assigned"),
        (ADMIN, "generic"),
    ]


@pytest.mark.asyncio
async def test_create_never_notifies_the_actor(case_engine):
    case = await _create(case_engine, actor_id=MANAGER)
    notifications = await stored_notifications(case_engine, case_id=case.id)
    assert [n.user_id for n in notifications] == [ADMIN]


# ---------------------------------------------------------------------------
# Read
# ---------------------------------------------------------------------------

@pytest.mark.asyncio
async def test_get_by_id_and_number(case_engine, existing_case):
    by_id = await case_engine.cases.get(existing_case.id)
    by_number = await case_engine.cases.get(case_number=existing_case.case_number)
    assert by_id.id == by_number.id == existing_case.id
    assert await case_engine.cases.get(9999) is None


@pytest.mark.asyncio
async def test_get_requires_a_key(case_engine):
    with pytest.raises(ValidationError):
        await case_engine.cases.get()


@pytest.mark.asyncio
async def test_get_or_raise_not_found(case_engine):
    with pytest.raises(NotFound) as exc_info:
        await case_engine.cases.get_or_raise(9999)
    assert str(exc_info.value) == "Case 9999 not found"


# ---------------------------------------------------------------------------
# Update
# ---------------------------------------------------------------------------

@pytest.mark.asyncio
async def test_update_without_changes_writes_nothing(case_engine, existing_case):
    result = await case_engine.cases.update(
        existing_case.id,
        {
            "title": existing_case.title,
            "status_id": str(STATUS_NEW),
            "case_date": "2026-03-14",
            "tags": "",
            "location": None,
        },
        ACTOR,
    )
    await case_engine.side_effects.drain()

    assert result.changed is False
    assert result.changes == {}
    assert result.message == NO_CHANGES_MESSAGE
    assert len(await _history(case_engine, existing_case.id)) == 1
    assert len(await stored_notifications(case_engine)) == 2


@pytest.mark.asyncio
async def test_update_generic_fields_make_one_history_entry(case_engine, existing_case):
    result = await case_engine.cases.update(
        existing_case.id,
        {
            "title": "Water point still broken",
            "description": "Second report",
            "tags": "water",
            "location": "North village",
        },
        STAFF_B,
    )
    await case_engine.side_effects.drain()

    assert result.changed is True
    assert set(result.changes) == {"title", "description", "tags", "location"}
    assert result.message == "Case updated successfully. 4 field(s) changed."
    assert result.case.title == "Water point still broken"
    assert result.case.updated_by == STAFF_B

    updates = await _history(case_engine, existing_case.id, action_type="UPDATE")
    assert len(updates) == 1
    assert updates[0].field_name == "title, description, tags, location"
    assert updates[0].comments == "4 field(s) updated"
    # Plain field edits notify nobody
    assert len(await stored_notifications(case_engine)) == 2


@pytest.mark.asyncio
async def test_update_ignores_immutable_fields(case_engine, existing_case):
    result = await case_engine.cases.update(
        existing_case.id, {"case_number": "HACKED", "created_by": 99}, ACTOR
    )
    assert result.changed is False
    stored = await case_engine.cases.get(existing_case.id)
    assert stored.case_number == existing_case.case_number
    assert stored.created_by == ACTOR


@pytest.mark.asyncio
async def test_update_invalid_value_changes_nothing(case_engine, existing_case):
    with pytest.raises(ValidationError):
        await case_engine.cases.update(
            existing_case.id, {"title": "New", "urgency_level": "urgent"}, ACTOR
        )
    stored = await case_engine.cases.get(existing_case.id)
    assert stored.title == existing_case.title


@pytest.mark.asyncio
async def test_update_unknown_case(case_engine):
    with pytest.raises(NotFound):
        await case_engine.cases.update(9999, {"title": "x"}, ACTOR)


@pytest.mark.asyncio
async def test_status_change_notifies_submitter_and_assignee(case_engine):
    case = await _create(case_engine, assigned_to=ASSIGNEE)
    result = await case_engine.cases.change_status(
        case.id, STATUS_IN_PROGRESS, ACTOR, reason="Field visit booked"
    )
    await case_engine.side_effects.drain()

    assert result.case.status_id == STATUS_IN_PROGRESS
    [entry] = await _history(case_engine, case.id, action_type="STATUS_CHANGE")
    assert entry.old_value == str(STATUS_NEW)
    assert entry.new_value == str(STATUS_IN_PROGRESS)
    assert entry.status_reason == "Field visit booked"

    notified = await stored_notifications(case_engine, type="case_status_changed")
    assert sorted(n.user_id for n in notified) == [SUBMITTER, ASSIGNEE]
    assert "from New to In Progress" in notified[0].message


@pytest.mark.asyncio
async def test_status_change_by_submitter_skips_submitter(case_engine, existing_case):
    await case_engine.cases.change_status(existing_case.id, STATUS_IN_PROGRESS, SUBMITTER)
    await case_engine.side_effects.drain()
    assert await stored_notifications(case_engine, type="case_status_changed") == []


@pytest.mark.asyncio
async def test_mutation_succeeds_when_every_side_effect_fails(
    case_engine, existing_case, monkeypatch
):
    async def broken(*args, **kwargs):
        raise RuntimeError("audit store offline")

    monkeypatch.setattr(case_engine.history, "record_changes", broken)
    monkeypatch.setattr(case_engine.notifications, "dispatch", broken)

    result = await case_engine.cases.change_status(existing_case.id, STATUS_IN_PROGRESS, ACTOR)
    await case_engine.side_effects.drain()

    assert result.changed is True
    stored = await case_engine.cases.get(existing_case.id)
    assert stored.status_id == STATUS_IN_PROGRESS
    failed = {f.task_name for f in case_engine.side_effects.failures}
    assert failed == {
        f"case-{existing_case.id}-history",
        f"case-{existing_case.id}-CaseStatusChanged-notifications",
    }
    assert len(await _history(case_engine, existing_case.id)) == 1


# ---------------------------------------------------------------------------
# Soft delete
# ---------------------------------------------------------------------------

@pytest.mark.asyncio
async def test_soft_deleted_case_disappears(case_engine, existing_case):
    result = await case_engine.cases.soft_delete(existing_case.id, ACTOR)
    await case_engine.side_effects.drain()

    assert result.case.is_deleted is True
    assert result.case.deleted_by == ACTOR
    assert await case_engine.cases.get(existing_case.id) is None
    with pytest.raises(NotFound):
        await case_engine.cases.get_or_raise(existing_case.id)
    with pytest.raises(NotFound):
        await case_engine.cases.update(existing_case.id, {"title": "Revived"}, ACTOR)
    assert (await case_engine.cases.search({})).data == []

    [entry] = await _history(case_engine, existing_case.id, action_type="UPDATE")
    assert entry.comments == "Case deleted"


@pytest.mark.asyncio
async def test_soft_delete_twice(case_engine, existing_case):
    await case_engine.cases.soft_delete(existing_case.id, ACTOR)
    with pytest.raises(NotFound):
        await case_engine.cases.soft_delete(existing_case.id, ACTOR)


# ---------------------------------------------------------------------------
# Workflow operations
# ---------------------------------------------------------------------------

@pytest.mark.asyncio
async def test_assign_then_reassign(case_engine, existing_case):
    first = await case_engine.cases.assign(existing_case.id, STAFF_B, ACTOR)
    await case_engine.side_effects.drain()
    assert first.case.assigned_to == STAFF_B
    assert first.case.assigned_by == ACTOR
    assert first.case.assigned_at == NOW

    await case_engine.cases.assign(existing_case.id, ASSIGNEE, ACTOR, comments="Closer to site")
    await case_engine.side_effects.drain()

    entries = await _history(case_engine, existing_case.id, action_type="ASSIGNMENT_CHANGE")
    descriptions = sorted(e.change_description for e in entries)
    assert descriptions == [
        f"Case assigned to user {STAFF_B}",
        f"Case reassigned from user {STAFF_B} to user {ASSIGNEE}",
    ]
    assert all(e.assigned_by == ACTOR for e in entries)

    staff_b = await stored_notifications(case_engine, user_id=STAFF_B)
    assert [n.type for n in staff_b] == ["case_assigned", "assignment_transferred"]
    assignee = await stored_notifications(case_engine, user_id=ASSIGNEE)
    assert [n.type for n in assignee] == ["case_assigned"]


@pytest.mark.asyncio
async def test_assign_same_user_is_a_no_op(case_engine, existing_case):
    await case_engine.cases.assign(existing_case.id, ASSIGNEE, ACTOR)
    await case_engine.side_effects.drain()
    again = await case_engine.cases.assign(existing_case.id, ASSIGNEE, ACTOR)
    assert again.changed is False


@pytest.mark.asyncio
async def test_escalate(case_engine, existing_case):
    result = await case_engine.cases.escalate(
        existing_case.id,
        ACTOR,
        "No response from the field team",
        escalated_to=ASSIGNEE,
        priority_id=PRIORITY_HIGH,
    )
    await case_engine.side_effects.drain()

    case = result.case
    assert case.escalation_level == 1
    assert case.escalated_by == ACTOR
    assert case.escalated_at == NOW
    assert case.escalation_reason == "No response from the field team"
    assert case.priority_id == PRIORITY_HIGH
    assert case.assigned_to == ASSIGNEE

    actions = {e.action_type for e in await _history(case_engine, existing_case.id)}
    assert {"ESCALATION", "PRIORITY_CHANGE", "ASSIGNMENT_CHANGE"} <= actions
    [escalation] = await _history(case_engine, existing_case.id, action_type="escalation")
    assert escalation.comments == "No response from the field team"
    assert escalation.new_value == "1"

    escalations = await stored_notifications(case_engine, type="escalation")
    assert sorted(n.user_id for n in escalations) == [ASSIGNEE, MANAGER, ADMIN]
    assert all(n.priority == "high" for n in escalations)
    # Separate event, separate notification
    assert len(await stored_notifications(case_engine, user_id=ASSIGNEE, type="case_assigned")) == 1


@pytest.mark.asyncio
async def test_escalate_again_raises_level(case_engine, existing_case):
    await case_engine.cases.escalate(existing_case.id, ACTOR, "First")
    await case_engine.side_effects.drain()
    result = await case_engine.cases.escalate(existing_case.id, ACTOR, "Second")
    assert result.case.escalation_level == 2


@pytest.mark.asyncio
async def test_escalate_requires_reason(case_engine, existing_case):
    with pytest.raises(ValidationError) as exc_info:
        await case_engine.cases.escalate(existing_case.id, ACTOR, "   ")
    assert exc_info.value.field == "escalation_reason"


@pytest.mark.asyncio
async def test_resolve(case_engine, existing_case):
    result = await case_engine.cases.change_status(
        existing_case.id,
        STATUS_RESOLVED,
        ACTOR,
        reason="Pump replaced",
        resolved=True,
        resolution_summary="New pump installed by the district office",
    )
    await case_engine.side_effects.drain()

    assert result.case.resolved_date == NOW
    assert result.case.resolution_summary == "New pump installed by the district office"
    [resolution] = await _history(case_engine, existing_case.id, action_type="RESOLUTION")
    assert resolution.comments == "New pump installed by the district office"

    submitter = await stored_notifications(case_engine, user_id=SUBMITTER)
    assert sorted(n.type for n in submitter) == ["case_resolved", "case_status_changed"]


# ---------------------------------------------------------------------------
# Search
# ---------------------------------------------------------------------------

@pytest.fixture
def search_cases(case_engine):
    async def make():
        water = await _create(case_engine)
        conduct = await _create(
            case_engine,
            title="Rude staff at the clinic",
            description="Visitor was shouted at",
            category_id=CATEGORY_CONDUCT,
            channel_id=CHANNEL_PHONE,
            priority_id=PRIORITY_CRITICAL,
            status_id=STATUS_IN_PROGRESS,
            urgency_level="high",
        )
        payment = await _create(
            case_engine,
            title="Late payment",
            description="Cash transfer for WATER committee arrived late",
            priority_id=PRIORITY_LOW,
            status_id=STATUS_RESOLVED,
            urgency_level="low",
        )
        return water, conduct, payment

    return make


@pytest.mark.asyncio
async def test_search_default_order_is_newest_first(case_engine, search_cases):
    water, conduct, payment = await search_cases()
    result = await case_engine.cases.search({})
    assert [c.id for c in result.data] == [payment.id, conduct.id, water.id]
    assert result.pagination.total == 3
    assert result.search["query"] is None
    assert "cases.title" in result.search["fields"]


@pytest.mark.asyncio
async def test_search_term_is_case_insensitive(case_engine, search_cases):
    water, _, payment = await search_cases()
    result = await case_engine.cases.search({"search": "water"})
    assert {c.id for c in result.data} == {water.id, payment.id}
    assert result.search == {
        "query": "water",
        "fields": result.search["fields"],
        "results_count": 2,
    }


@pytest.mark.asyncio
async def test_search_matches_lookup_names(case_engine, search_cases):
    _, conduct, _ = await search_cases()
    result = await case_engine.cases.search({"search": "conduct"})
    assert [c.id for c in result.data] == [conduct.id]


@pytest.mark.asyncio
async def test_search_wildcards_are_literal(case_engine, search_cases):
    await search_cases()
    result = await case_engine.cases.search({"search": "%"})
    assert result.data == []


@pytest.mark.asyncio
async def test_search_filters(case_engine, search_cases):
    water, conduct, payment = await search_cases()

    by_list = await case_engine.cases.search({"statuses": f"{STATUS_NEW},{STATUS_IN_PROGRESS}"})
    assert {c.id for c in by_list.data} == {water.id, conduct.id}

    exact = await case_engine.cases.search({"urgency_level": "low"})
    assert [c.id for c in exact.data] == [payment.id]
    assert exact.filters == {"urgency_level": "low"}


@pytest.mark.asyncio
async def test_search_date_only_upper_bound_includes_whole_day(case_engine, search_cases):
    await search_cases()
    same_day = await case_engine.cases.search({"created_at_to": "2026-03-14"})
    assert same_day.pagination.total == 3
    day_before = await case_engine.cases.search({"created_at_to": "2026-03-13"})
    assert day_before.pagination.total == 0
    from_today = await case_engine.cases.search({"created_at_from": "2026-03-14"})
    assert from_today.pagination.total == 3


@pytest.mark.asyncio
async def test_search_sort_by_priority_level(case_engine, search_cases):
    water, conduct, payment = await search_cases()
    result = await case_engine.cases.search({"sort_by": "priority", "sort_order": "asc"})
    assert [c.id for c in result.data] == [conduct.id, water.id, payment.id]


@pytest.mark.asyncio
async def test_search_pagination(case_engine, search_cases):
    await search_cases()
    result = await case_engine.cases.search({"page": 2, "limit": 2})
    assert len(result.data) == 1
    pagination = result.pagination
    assert (pagination.page, pagination.limit, pagination.total) == (2, 2, 3)
    assert pagination.offset == 2
    assert pagination.total_pages == 2
    assert pagination.has_prev is True
    assert pagination.has_next is False


@pytest.mark.asyncio
async def test_search_impossible_returns_empty(case_engine, search_cases):
    await search_cases()
    result = await case_engine.cases.search({"impossible": True, "search": "water"})
    assert result.data == []
    assert result.pagination.total == 0
    assert result.search["results_count"] == 0
