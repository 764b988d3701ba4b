from datetime import datetime, timezone

import pytest

from aggregates import CategoryAggregator, activity_stats
from repository import CourseRepository

NOW = datetime(2026, 3, 1, 12, 0, tzinfo=timezone.utc)


@pytest.fixture()
def aggregator(store):
    return CategoryAggregator(store, clock=lambda: NOW)


def add_activity(store, activity_id, category_id="cat-1", due_date=None, course_id="course-1", title=None):
    store.insert(
        "activities",
        [
            {
                "_id": activity_id,
                "course_id": course_id,
                "category_id": category_id,
                "title": title or activity_id,
                "due_date": due_date,
            }
        ],
    )


def test_activity_without_due_date_is_pending_never_overdue(store):
    add_activity(store, "a1", due_date=None)
    add_activity(store, "a2", due_date="2026-02-01T00:00:00Z")
    add_activity(store, "a3", due_date="2026-04-01T00:00:00Z")
    add_activity(store, "a4", due_date="no es una fecha")

    stats = activity_stats(CourseRepository(store).activities(), NOW)

    assert (stats.total, stats.pending, stats.overdue) == (4, 3, 1)


def test_categories_are_decorated_and_sorted_by_name(aggregator, store, seed_category, seed_group):
    seed_category("cat-1", name="proyecto")
    seed_category("cat-2", name="Laboratorio")
    seed_category("cat-3", name="Zeta")
    seed_category("other", course_id="course-2", name="Ajena")
    seed_group("g1", category_id="cat-1", members=["a", "b"])
    seed_group("g2", category_id="cat-1", members=["c"])
    add_activity(store, "a1", category_id="cat-1", due_date="2026-01-01")
    add_activity(store, "a2", category_id="cat-1")

    categories = aggregator.categories_for_course("course-1")

    assert [c.name for c in categories] == ["Laboratorio", "proyecto", "Zeta"]
    project = categories[1]
    assert project.group_count == 2
    assert project.total_members == 3
    assert project.activity_count == 2
    assert project.pending_activities == 1
    assert project.overdue_activities == 1
    assert categories[0].group_count == 0


def test_failed_secondary_lookup_does_not_abort_listing(flaky, seed_category, seed_group):
    seed_category("cat-1", name="Proyecto")
    seed_group("g1", members=["a"])
    failing = flaky(lambda op, coll, payload, n: op == "read" and coll == "group_members")

    categories = CategoryAggregator(failing, clock=lambda: NOW).categories_for_course("course-1")

    assert len(categories) == 1
    assert categories[0].group_count == 1
    assert categories[0].total_members == 0


def test_category_detail(aggregator, seed_category, seed_group):
    seed_category("cat-1")
    seed_group("g1", members=["a"])

    detail = aggregator.category_detail("cat-1")

    assert detail.group_count == 1
    assert detail.total_members == 1
    assert aggregator.category_detail("missing") is None


def test_groups_in_category_report_capacity_usage(aggregator, seed_category, seed_group):
    seed_category("cat-1", capacity=3)
    seed_group("g2", name="beta", members=["a"])
    seed_group("g1", name="Alfa", members=["b", "c"])

    groups = aggregator.groups_in_category("cat-1")

    assert [g.name for g in groups] == ["Alfa", "beta"]
    assert groups[0].member_count == 2
    assert groups[0].capacity == 3
    assert groups[0].capacity_percentage == 67
    assert {m.student_id for m in groups[0].members} == {"b", "c"}


def test_activities_sorted_by_due_date_with_undated_last(aggregator, store, seed_category):
    seed_category("cat-1", name="Proyecto", mode="random")
    add_activity(store, "late", due_date="2026-05-01")
    add_activity(store, "none")
    add_activity(store, "early", due_date="2026-01-15")
    add_activity(store, "loose", category_id=None, due_date="2026-02-01")

    in_category = aggregator.activities_in_category("cat-1")
    assert [a.id for a in in_category] == ["early", "late", "none"]

    for_course = aggregator.activities_for_course("course-1")
    assert [a.id for a in for_course] == ["early", "loose", "late", "none"]
    assert for_course[0].category_name == "Proyecto"
    assert for_course[0].category_mode.value == "random"
    assert for_course[1].category_name is None


def test_course_activity_stats_and_mode_summary(aggregator, store, seed_category):
    seed_category("cat-1", mode="random")
    seed_category("cat-2", mode="eleccion", name="B")
    seed_category("cat-3", mode="choice", name="C")
    add_activity(store, "a1", due_date="2026-01-01")
    add_activity(store, "a2", due_date="2026-12-01")

    stats = aggregator.course_activity_stats("course-1")

    assert (stats.total, stats.pending, stats.overdue) == (2, 1, 1)
    assert aggregator.summary_by_mode("course-1") == {"random": 1, "choice": 2}
