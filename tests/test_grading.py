import threading

import pytest
from sqlalchemy.orm import sessionmaker

from db import Base, make_engine
from errors import ActivityNotFoundError
from grading import PeerGradeAggregator
from locks import KeyedLock
from repository import CourseRepository
from store import SqlRecordStore


@pytest.fixture()
def grading(store):
    return PeerGradeAggregator(store)


def add_grades(store, activity_id, rows):
    store.insert(
        "grades",
        [
            {
                "activity_id": activity_id,
                "student_id": student_id,
                "grade": grade,
                "max_grade": max_grade,
                "graded_by": grader,
            }
            for student_id, grade, max_grade, grader in rows
        ],
    )


def test_results_ranked_by_average_descending(grading, store):
    add_grades(
        store,
        "act-1",
        [("s1", 2, 5, "p1"), ("s1", 4, 5, "p2"), ("s2", 5, 5, "p1"), ("s9", 1, 5, "p1")],
    )
    add_grades(store, "act-2", [("s1", 5, 5, "p3")])

    results = grading.activity_submissions_with_grades("act-1")

    assert [(r.student_id, r.average_grade, r.total_evaluations) for r in results] == [
        ("s2", 5.0, 1),
        ("s1", 3.0, 2),
        ("s9", 1.0, 1),
    ]
    assert {g.graded_by for g in results[1].grades_list} == {"p1", "p2"}


def test_ties_keep_grouping_order(grading, store):
    add_grades(store, "act-1", [("s1", 3, 5, "p1"), ("s1", 5, 5, "p2"), ("s2", 4, 5, "p1")])

    results = grading.activity_submissions_with_grades("act-1")

    assert [(r.student_id, r.average_grade) for r in results] == [("s1", 4.0), ("s2", 4.0)]


def test_mixed_scales_are_summed_raw(grading, store):
    add_grades(store, "act-1", [("s1", 3, 5, "p1"), ("s1", 3, 10, "p2")])

    results = grading.activity_submissions_with_grades("act-1")

    assert results[0].average_grade == 3.0


def test_no_grades_gives_empty_results(grading):
    assert grading.activity_submissions_with_grades("act-1") == []


def test_save_grade_twice_keeps_one_record(grading, store):
    grading.save_grade("act-1", "s1", 2, 5, "p1")
    saved = grading.save_grade("act-1", "s1", 4, 5, "p1")

    grades = CourseRepository(store).grades_for_activity("act-1")
    assert len(grades) == 1
    assert grades[0].grade == 4
    assert saved.id == grades[0].id


def test_different_graders_create_separate_grades(grading, store):
    grading.save_grade("act-1", "s1", 2, 5, "p1")
    grading.save_grade("act-1", "s1", 4, 5, "p2")

    assert len(CourseRepository(store).grades_for_activity("act-1")) == 2


def test_my_grade_is_none_when_ungraded(grading):
    assert grading.get_my_grade_for_student("act-1", "s1", "p1") is None


def test_duplicate_grades_count_once(grading, store):
    add_grades(store, "act-1", [("s1", 1, 5, "p1"), ("s1", 5, 5, "p1"), ("s1", 3, 5, "p2")])

    results = grading.activity_submissions_with_grades("act-1")

    assert results[0].total_evaluations == 2
    assert results[0].average_grade == 4.0


def test_standing_for_student(grading, store):
    add_grades(store, "act-1", [("s1", 2, 5, "p1"), ("s2", 5, 5, "p1")])

    standing = grading.standing_for_student("act-1", "s1")

    assert standing.rank == 2
    assert standing.ranked_students == 2
    assert standing.summary.average_grade == 2.0
    assert grading.standing_for_student("act-1", "nobody") is None


def test_peers_to_evaluate(grading, store, seed_category, seed_group):
    seed_category("cat-1")
    seed_group("g1", members=["ana", "bob", "eva"])
    seed_group("g2", members=["zoe"])
    store.insert("activities", [{"_id": "act-1", "course_id": "course-1", "category_id": "cat-1", "title": "Entrega"}])
    add_grades(store, "act-1", [("bob", 4, 5, "ana")])

    peers = grading.peers_to_evaluate("act-1", "ana")

    assert {p.student_id for p in peers} == {"bob", "eva"}
    by_id = {p.student_id: p for p in peers}
    assert by_id["bob"].my_grade == 4
    assert by_id["eva"].my_grade is None
    assert grading.peers_to_evaluate("act-1", "outsider") is None


def test_peers_for_unknown_activity(grading):
    with pytest.raises(ActivityNotFoundError):
        grading.peers_to_evaluate("missing", "ana")


def test_save_grade_releases_its_locks(store):
    locks = KeyedLock()
    grading = PeerGradeAggregator(store, locks=locks)

    for i in range(20):
        grading.save_grade("act-1", f"s{i}", 3, 5, "p1")

    assert locks._locks == {}


def test_concurrent_saves_of_the_same_grade_keep_one_record(tmp_path):
    # Base en archivo: cada hilo usa su propia conexión
    engine = make_engine(f"sqlite:///{tmp_path / 'grades.db'}")
    Base.metadata.create_all(bind=engine)
    store = SqlRecordStore(sessionmaker(bind=engine))
    grading = PeerGradeAggregator(store, locks=KeyedLock())

    threads = [
        threading.Thread(target=grading.save_grade, args=("act-1", "s1", grade, 5, "p1"))
        for grade in range(5)
    ]
    for thread in threads:
        thread.start()
    for thread in threads:
        thread.join()

    grades = CourseRepository(store).grades_for_activity("act-1")
    assert len(grades) == 1
    assert grades[0].grade in range(5)
    engine.dispose()
