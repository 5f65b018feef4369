from datetime import date, timedelta

import pytest
from sqlmodel import select

from models import Completion
from models.patch import SetTo, TaskPatch
from services import recurrence, tasks as tasks_module
from services.tasks import TaskNotFoundError, TaskService, TaskServiceError


@pytest.fixture()
def fixed_today(monkeypatch):
    day = date(2024, 3, 6)
    monkeypatch.setattr(tasks_module, "today", lambda: day)
    monkeypatch.setattr(recurrence, "today", lambda: day)
    return day


def _completion_count(session_factory, task_id):
    with session_factory() as session:
        return len(session.exec(select(Completion).where(Completion.task_id == task_id)).all())


def test_create_appends_to_end_of_list(repo):
    first = repo.create("  Write report ")
    second = repo.create("Call Anna")

    assert first.title == "Write report"
    assert len(first.id) == 32
    assert first.sort_order == 1.0
    assert second.sort_order == 2.0
    assert first.is_completed is False
    assert first.status == "active"


def test_create_keeps_external_id_and_rejects_duplicates(repo):
    task = repo.create("From phone", task_id="m1")
    assert task.id == "m1"
    with pytest.raises(TaskServiceError):
        repo.create("Again", task_id="m1")


def test_create_rejects_blank_title_and_unknown_status(repo):
    with pytest.raises(TaskServiceError):
        repo.create("   ")
    with pytest.raises(TaskServiceError):
        repo.create("Meeting notes", status="archived")


def test_recurring_task_without_due_date_gets_first_occurrence(repo, fixed_today):
    task = repo.create("Weekly review", rrule="FREQ=WEEKLY;BYDAY=FR", is_recurring=True)
    assert task.due_date == date(2024, 3, 8)


def test_update_touches_only_given_fields(repo):
    task = repo.create("Pay rent", due_date=date(2024, 4, 1), due_time="09:00")
    before = task.updated_at

    updated = repo.update(task.id, TaskPatch(title=SetTo("Pay rent online")))
    assert updated.title == "Pay rent online"
    assert updated.due_date == date(2024, 4, 1)
    assert updated.due_time == "09:00"
    assert updated.updated_at >= before

    cleared = repo.update(task.id, TaskPatch(due_date=SetTo(None)))
    assert cleared.due_date is None
    assert cleared.due_time == "09:00"


def test_update_missing_task_raises(repo):
    with pytest.raises(TaskNotFoundError):
        repo.update("nope", TaskPatch(title=SetTo("x")))


def test_complete_one_off_task(repo, session_factory):
    task = repo.create("Buy milk", due_date=date(2024, 3, 1))
    done = repo.complete(task.id)

    assert done.is_completed is True
    assert done.due_date == date(2024, 3, 1)
    assert _completion_count(session_factory, task.id) == 1
    assert repo.list_tasks() == []


def test_complete_recurring_task_advances_in_place(repo, session_factory, fixed_today):
    task = repo.create(
        "Gym",
        due_date=date(2024, 3, 1),
        rrule="FREQ=WEEKLY;BYDAY=FR",
        is_recurring=True,
    )

    advanced = repo.complete(task.id)
    assert advanced.id == task.id
    assert advanced.is_completed is False
    assert advanced.due_date == date(2024, 3, 8)
    assert _completion_count(session_factory, task.id) == 1

    # Each call advances again.
    again = repo.complete(task.id)
    assert again.due_date == date(2024, 3, 15)
    assert _completion_count(session_factory, task.id) == 2

    with session_factory() as session:
        history = session.exec(
            select(Completion).where(Completion.task_id == task.id).order_by(Completion.due_date)
        ).all()
    assert [c.due_date for c in history] == [date(2024, 3, 1), date(2024, 3, 8)]


def test_complete_exhausted_recurring_task_marks_completed(repo):
    task = repo.create(
        "One-shot",
        due_date=date(2024, 3, 1),
        rrule="FREQ=DAILY;COUNT=1",
        is_recurring=True,
    )
    done = repo.complete(task.id)
    assert done.is_completed is True


def test_complete_missing_task_raises(repo):
    with pytest.raises(TaskNotFoundError):
        repo.complete("nope")


def test_delete_removes_completion_history(repo, session_factory):
    task = repo.create("Water plants", due_date=date(2024, 3, 1), rrule="FREQ=DAILY", is_recurring=True)
    repo.complete(task.id)
    assert _completion_count(session_factory, task.id) == 1

    assert repo.delete(task.id) is True
    assert repo.get(task.id) is None
    assert _completion_count(session_factory, task.id) == 0
    assert repo.delete(task.id) is False


def test_reorder(repo):
    a = repo.create("A")
    b = repo.create("B")
    repo.reorder(b.id, 0.5)
    assert [t.id for t in repo.list_tasks()] == [b.id, a.id]


def test_inbox_and_today_views(repo, fixed_today):
    upcoming = repo.create("Upcoming", due_date=fixed_today + timedelta(days=3))
    due_today = repo.create("Today", due_date=fixed_today)
    overdue = repo.create("Overdue", due_date=fixed_today - timedelta(days=2))
    undated = repo.create("Someday")

    inbox = [t.id for t in repo.list_tasks("inbox")]
    assert inbox == [undated.id, overdue.id, due_today.id, upcoming.id]

    today_view = [t.id for t in repo.list_tasks("today")]
    assert today_view == [overdue.id, due_today.id]
    assert repo.due_today_count() == 2

    with pytest.raises(TaskServiceError):
        repo.list_tasks("calendar")


def test_list_for_sync_skips_review_and_completed(repo):
    kept = repo.create("Active")
    repo.create("From meeting", status="review")
    finished = repo.create("Finished")
    repo.complete(finished.id)

    assert [t.id for t in repo.list_for_sync()] == [kept.id]


def test_search_matches_active_titles(repo):
    repo.create("Call plumber")
    repo.create("Email landlord")
    done = repo.create("Call bank")
    repo.complete(done.id)

    assert [t.title for t in repo.search("call")] == ["Call plumber"]
    assert repo.search("   ") == []


def test_completion_history_and_stats(repo):
    gym = repo.create("Gym", due_date=date(2024, 3, 1), rrule="FREQ=DAILY", is_recurring=True)
    milk = repo.create("Milk")
    repo.complete(gym.id)
    repo.complete(gym.id)
    repo.complete(milk.id)

    history = repo.completion_history()
    assert len(history) == 3
    assert {row.title for row in history} == {"Gym", "Milk"}
    assert all(row.completed_at is not None for row in history)

    stats = repo.completion_stats()
    assert stats.total == 3
    assert stats.today == 3
    assert stats.this_week == 3

    assert len(repo.completions(gym.id)) == 2


def test_events_fire_after_commit(repo):
    seen = []

    def listener(task_id):
        seen.append((task_id, repo.get(task_id) is not None))

    TaskService.subscribe("after_create", listener)
    try:
        task = repo.create("Observed")
        repo.create("Quiet", emit=False)
    finally:
        TaskService.unsubscribe("after_create", listener)

    assert seen == [(task.id, True)]


def test_failing_listener_does_not_break_mutation(repo):
    def boom(task_id):
        raise RuntimeError("listener failed")

    TaskService.subscribe("after_delete", boom)
    try:
        task = repo.create("Doomed")
        assert repo.delete(task.id) is True
    finally:
        TaskService.unsubscribe("after_delete", boom)

    with pytest.raises(ValueError):
        TaskService.subscribe("after_everything", boom)



def test_complete_recurring_task_with_floating_until(repo):
    task = repo.create(
        "Standup",
        due_date=date(2024, 3, 9),
        rrule="FREQ=DAILY;UNTIL=20240310T000000",
        is_recurring=True,
    )

    assert repo.complete(task.id).due_date == date(2024, 3, 10)
    assert repo.complete(task.id).is_completed is True


@pytest.mark.parametrize("bad", ["9:30", "24:00", "09:60", "noon", "09:30:00"])
def test_due_time_must_be_hh_mm(repo, bad):
    with pytest.raises(TaskServiceError):
        repo.create("Call mum", due_time=bad)

    task = repo.create("Call dad", due_time="09:30")
    with pytest.raises(TaskServiceError):
        repo.update(task.id, TaskPatch(due_time=SetTo(bad)))
    assert repo.get(task.id).due_time == "09:30"


def test_due_time_can_be_cleared(repo):
    task = repo.create("Call dad", due_time="21:15")
    assert repo.update(task.id, TaskPatch(due_time=SetTo(None))).due_time is None
