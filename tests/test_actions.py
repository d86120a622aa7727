"""Task operations against an in-memory store.

Covers the owner-scoping rules, the failure taxonomy, and the page-refresh
signal every successful mutation sends.
"""

import logging
from datetime import timedelta
from uuid import uuid4

import pytest

from taskboard import actions
from taskboard.schemas import ActionFailure, ActionSuccess, FailureKind, TaskStatus
from taskboard.utils import as_utc

from .fakes import BrokenRevalidator, ExplodingStore, FailingStore, FakeWebSocket, RecordingStore


async def _create(ctx, **fields):
    form = {"title": "Buy milk", "priority": "low"}
    form.update(fields)
    result = await actions.create_task(ctx, form)
    assert isinstance(result, ActionSuccess), result
    return result.data


# Create / list / fetch

async def test_create_returns_record_with_store_defaults(make_ctx, alice):
    result = await actions.create_task(make_ctx(alice), {"title": "Buy milk", "priority": "low"})

    assert isinstance(result, ActionSuccess)
    task = result.data
    assert task.id is not None
    assert task.user_id == alice.user_id
    assert task.status == TaskStatus.TODO
    assert task.created_at is not None
    assert task.updated_at is not None
    assert task.description is None
    assert task.category_id is None


async def test_created_task_is_listed_for_owner_only(make_ctx, alice, bob):
    task = await _create(make_ctx(alice))

    mine = await actions.get_tasks(make_ctx(alice))
    theirs = await actions.get_tasks(make_ctx(bob))

    assert [t.id for t in mine.data] == [task.id]
    assert theirs.data == []


async def test_list_joins_category_display_fields(make_ctx, alice, seed_category):
    category = await seed_category(alice)
    await _create(make_ctx(alice), title="Pick up parcel", category_id=str(category.id))
    await _create(make_ctx(alice), title="Water plants")

    result = await actions.get_tasks(make_ctx(alice))

    by_title = {t.title: t for t in result.data}
    joined = by_title["Pick up parcel"].category
    assert joined.id == category.id
    assert joined.name == "Errands"
    assert joined.color == "#22c55e"
    assert by_title["Water plants"].category is None


async def test_fetch_by_id_is_owner_scoped(make_ctx, alice, bob):
    task = await _create(make_ctx(alice))

    own = await actions.get_task_by_id(make_ctx(alice), task.id)
    foreign = await actions.get_task_by_id(make_ctx(bob), task.id)

    assert own.data.id == task.id
    assert isinstance(foreign, ActionFailure)
    assert foreign.kind == FailureKind.NOT_FOUND


async def test_fetch_missing_task_is_not_found(make_ctx, alice):
    result = await actions.get_task_by_id(make_ctx(alice), uuid4())
    assert result.kind == FailureKind.NOT_FOUND
    assert result.message == "Task not found."


# Validation and authorization happen before the store is touched

@pytest.mark.parametrize("title", ["ab", "x" * 101])
async def test_invalid_title_makes_no_store_call(make_ctx, store, alice, title):
    recording = RecordingStore(store)
    result = await actions.create_task(
        make_ctx(alice, store_override=recording), {"title": title, "priority": "low"},
    )

    assert result.kind == FailureKind.VALIDATION
    assert result.message == "Invalid form data. Please check your inputs."
    assert "title" in result.errors
    assert recording.calls == []


async def test_past_due_date_is_rejected(make_ctx, alice, clock):
    past = (clock() - timedelta(minutes=1)).isoformat()
    result = await actions.create_task(
        make_ctx(alice), {"title": "Buy milk", "priority": "low", "due_date": past},
    )
    assert result.kind == FailureKind.VALIDATION
    assert result.errors["due_date"] == ["Due date must be in the future"]


async def test_future_due_date_is_stored(make_ctx, alice, clock):
    due = clock() + timedelta(days=2)
    task = await _create(make_ctx(alice), due_date=due.isoformat())
    assert as_utc(task.due_date) == due


@pytest.mark.parametrize("call", [
    lambda ctx: actions.create_task(ctx, {"title": "Buy milk", "priority": "low"}),
    lambda ctx: actions.get_tasks(ctx),
    lambda ctx: actions.get_task_by_id(ctx, uuid4()),
    lambda ctx: actions.update_task(ctx, uuid4(), {"title": "Buy milk", "priority": "low"}),
    lambda ctx: actions.update_task_status(ctx, uuid4(), "completed"),
    lambda ctx: actions.delete_task(ctx, uuid4()),
    lambda ctx: actions.get_task_summary(ctx),
    lambda ctx: actions.get_categories(ctx),
    lambda ctx: actions.create_category(ctx, {"name": "Work"}),
])
async def test_no_identity_is_unauthorized_without_store_access(make_ctx, store, call):
    recording = RecordingStore(store)
    result = await call(make_ctx(None, store_override=recording))

    assert isinstance(result, ActionFailure)
    assert result.kind == FailureKind.UNAUTHORIZED
    assert result.message.startswith("You must be logged in to")
    assert recording.calls == []


# Category ownership

async def test_create_with_foreign_category_is_rejected(make_ctx, store, alice, bob, seed_category):
    bobs_category = await seed_category(bob)
    recording = RecordingStore(store)

    result = await actions.create_task(
        make_ctx(alice, store_override=recording),
        {"title": "Buy milk", "priority": "low", "category_id": str(bobs_category.id)},
    )

    assert result.kind == FailureKind.INVALID_CATEGORY
    assert result.message == "Invalid category selected."
    assert recording.calls == ["category_belongs_to"]
    assert (await actions.get_tasks(make_ctx(alice))).data == []


async def test_update_with_foreign_category_leaves_task_unchanged(make_ctx, alice, bob, seed_category):
    task = await _create(make_ctx(alice), title="Original title")
    bobs_category = await seed_category(bob)

    result = await actions.update_task(
        make_ctx(alice), task.id,
        {"title": "Changed title", "priority": "high", "category_id": str(bobs_category.id)},
    )

    assert result.kind == FailureKind.INVALID_CATEGORY
    stored = (await actions.get_task_by_id(make_ctx(alice), task.id)).data
    assert stored.title == "Original title"
    assert stored.priority.value == "low"
    assert stored.category_id is None


# Update

async def test_update_replaces_fields_and_stamps_updated_at(make_ctx, alice, clock, seed_category):
    task = await _create(make_ctx(alice), description="2 litres")
    category = await seed_category(alice)
    clock.advance(minutes=5)

    result = await actions.update_task(
        make_ctx(alice), task.id,
        {"title": "Buy oat milk", "priority": "urgent", "category_id": str(category.id), "description": ""},
    )

    assert isinstance(result, ActionSuccess)
    updated = result.data
    assert updated.title == "Buy oat milk"
    assert updated.priority.value == "urgent"
    assert updated.category_id == category.id
    assert updated.description is None
    assert as_utc(updated.updated_at) > as_utc(task.updated_at)


async def test_update_of_foreign_task_is_not_found(make_ctx, alice, bob):
    task = await _create(make_ctx(alice))

    result = await actions.update_task(make_ctx(bob), task.id, {"title": "Hijacked", "priority": "low"})

    assert result.kind == FailureKind.NOT_FOUND
    assert (await actions.get_task_by_id(make_ctx(alice), task.id)).data.title == "Buy milk"


# Status

async def test_status_update_is_reflected_with_newer_updated_at(make_ctx, alice, clock):
    task = await _create(make_ctx(alice))
    clock.advance(minutes=5)

    result = await actions.update_task_status(make_ctx(alice), task.id, "completed")
    assert isinstance(result, ActionSuccess)

    fetched = (await actions.get_task_by_id(make_ctx(alice), task.id)).data
    assert fetched.status == TaskStatus.COMPLETED
    assert as_utc(fetched.updated_at) > as_utc(task.updated_at)
    assert fetched.completed_at is not None


async def test_leaving_completed_clears_completed_at(make_ctx, alice):
    task = await _create(make_ctx(alice))
    await actions.update_task_status(make_ctx(alice), task.id, "completed")
    await actions.update_task_status(make_ctx(alice), task.id, "in_progress")

    fetched = (await actions.get_task_by_id(make_ctx(alice), task.id)).data
    assert fetched.status == TaskStatus.IN_PROGRESS
    assert fetched.completed_at is None


async def test_unknown_status_is_a_validation_failure(make_ctx, store, alice):
    recording = RecordingStore(store)
    result = await actions.update_task_status(make_ctx(alice, store_override=recording), uuid4(), "done")
    assert result.kind == FailureKind.VALIDATION
    assert "status" in result.errors
    assert recording.calls == []


async def test_status_update_of_foreign_task_is_not_found(make_ctx, alice, bob):
    task = await _create(make_ctx(alice))

    result = await actions.update_task_status(make_ctx(bob), task.id, "cancelled")

    assert result.kind == FailureKind.NOT_FOUND
    assert (await actions.get_task_by_id(make_ctx(alice), task.id)).data.status == TaskStatus.TODO


# Delete

async def test_delete_removes_owned_task(make_ctx, alice):
    task = await _create(make_ctx(alice))

    result = await actions.delete_task(make_ctx(alice), task.id)

    assert isinstance(result, ActionSuccess)
    assert (await actions.get_task_by_id(make_ctx(alice), task.id)).kind == FailureKind.NOT_FOUND


async def test_delete_with_other_identity_affects_nothing(make_ctx, alice, bob):
    task = await _create(make_ctx(alice))

    result = await actions.delete_task(make_ctx(bob), task.id)

    assert result.kind == FailureKind.NOT_FOUND
    assert (await actions.get_task_by_id(make_ctx(alice), task.id)).data.id == task.id


# Summary and categories

async def test_summary_counts_by_status(make_ctx, alice, bob):
    first = await _create(make_ctx(alice), title="First task")
    await _create(make_ctx(alice), title="Second task")
    await _create(make_ctx(bob), title="Not mine")
    await actions.update_task_status(make_ctx(alice), first.id, "completed")

    summary = (await actions.get_task_summary(make_ctx(alice))).data

    assert summary.total == 2
    assert summary.todo == 1
    assert summary.completed == 1
    assert summary.in_progress == 0
    assert summary.cancelled == 0


async def test_categories_are_owner_scoped_and_sorted(make_ctx, alice, bob):
    await actions.create_category(make_ctx(alice), {"name": "Work", "color": "#ef4444"})
    await actions.create_category(make_ctx(alice), {"name": "Home"})
    await actions.create_category(make_ctx(bob), {"name": "Bob stuff"})

    result = await actions.get_categories(make_ctx(alice))

    assert [c.name for c in result.data] == ["Home", "Work"]
    assert result.data[0].color == "#6366f1"


async def test_invalid_category_form(make_ctx, alice):
    result = await actions.create_category(make_ctx(alice), {"name": "", "color": "red"})
    assert result.kind == FailureKind.VALIDATION
    assert set(result.errors) == {"name", "color"}


# Store and unexpected failures

async def test_store_failure_is_logged_but_not_leaked(make_ctx, alice, caplog):
    ctx = make_ctx(alice, store_override=FailingStore(detail="password authentication failed for db.internal"))

    with caplog.at_level(logging.ERROR, logger="taskboard.actions"):
        result = await actions.create_task(ctx, {"title": "Buy milk", "priority": "low"})

    assert result.kind == FailureKind.STORE
    assert result.message == "Failed to create task. Please try again."
    assert "db.internal" not in result.model_dump_json()
    assert "db.internal" in caplog.text


async def test_unexpected_failure_is_recovered(make_ctx, alice, caplog):
    ctx = make_ctx(alice, store_override=ExplodingStore())

    with caplog.at_level(logging.ERROR, logger="taskboard.actions"):
        result = await actions.delete_task(ctx, uuid4())

    assert result.kind == FailureKind.UNEXPECTED
    assert result.message == "An unexpected error occurred while deleting the task."
    assert "exploded" in caplog.text


# Page-refresh signal

async def test_mutations_mark_views_stale(make_ctx, alice, revalidator):
    task = await _create(make_ctx(alice))
    assert revalidator.generation(alice.user_id, "/dashboard") == 1

    await actions.update_task(make_ctx(alice), task.id, {"title": "Buy more milk", "priority": "low"})
    assert revalidator.generation(alice.user_id, "/dashboard") == 2
    assert revalidator.generation(alice.user_id, f"/tasks/edit/{task.id}") == 1

    await actions.update_task_status(make_ctx(alice), task.id, "completed")
    await actions.delete_task(make_ctx(alice), task.id)
    assert revalidator.generation(alice.user_id, "/dashboard") == 4


async def test_reads_and_failures_do_not_mark_views_stale(make_ctx, alice, bob, revalidator):
    task = await _create(make_ctx(alice))

    await actions.get_tasks(make_ctx(alice))
    await actions.get_task_by_id(make_ctx(alice), task.id)
    await actions.delete_task(make_ctx(bob), task.id)
    await actions.create_task(make_ctx(alice), {"title": "x", "priority": "low"})

    assert revalidator.generation(alice.user_id, "/dashboard") == 1
    assert revalidator.generation(bob.user_id, "/dashboard") == 0


async def test_delete_drops_the_edit_view(make_ctx, alice, revalidator):
    task = await _create(make_ctx(alice))
    await actions.update_task_status(make_ctx(alice), task.id, "in_progress")
    assert f"/tasks/edit/{task.id}" in revalidator.stale_paths(alice.user_id)

    await actions.delete_task(make_ctx(alice), task.id)

    assert revalidator.stale_paths(alice.user_id) == ["/dashboard"]


async def test_dead_update_socket_does_not_fail_a_saved_write(make_ctx, alice, store, revalidator):
    socket = FakeWebSocket(error=OSError("Connection reset by peer"))
    await revalidator.connections.connect(socket, alice.user_id)

    result = await actions.create_task(make_ctx(alice), {"title": "Buy milk", "priority": "low"})

    assert isinstance(result, ActionSuccess)
    assert len(await store.list_tasks(alice.user_id)) == 1
    assert revalidator.connections.connection_count() == 0


async def test_failed_refresh_signal_is_logged_not_reported(make_ctx, alice, store, caplog):
    ctx = make_ctx(alice)
    ctx.revalidator = BrokenRevalidator()

    with caplog.at_level(logging.ERROR, logger="taskboard.actions"):
        created = await actions.create_task(ctx, {"title": "Buy milk", "priority": "low"})
        deleted = await actions.delete_task(ctx, created.data.id)

    assert isinstance(created, ActionSuccess)
    assert isinstance(deleted, ActionSuccess)
    assert await store.list_tasks(alice.user_id) == []
    assert "Page refresh signal failed" in caplog.text
