# grading.py
import logging

from errors import ActivityNotFoundError
from locks import grade_locks
from repository import CourseRepository
from schemas import PeerToEvaluate, StudentGradeSummary, StudentStanding

logger = logging.getLogger(__name__)


def latest_per_grader(grades):
    """Una sola calificación por (evaluado, evaluador): cuenta la última leída.

    Los duplicados solo existen si dos escrituras concurrentes se cruzaron
    fuera de este proceso.
    """
    latest = {}
    for grade in grades:
        key = (grade.student_id, grade.graded_by)
        if key in latest:
            logger.warning(
                "Calificación duplicada de %s para %s en %s; se usa la última",
                grade.graded_by,
                grade.student_id,
                grade.activity_id,
            )
        # Reasignar conserva la posición de la primera aparición
        latest[key] = grade
    return list(latest.values())


class PeerGradeAggregator:
    """Calificaciones entre pares: guardado idempotente y ranking por promedio."""

    def __init__(self, store, locks=grade_locks):
        self.store = store
        self.repo = CourseRepository(store)
        self.locks = locks

    def grades_for_activity(self, activity_id):
        grades = self.repo.grades_for_activity(activity_id)
        logger.info("%s calificaciones encontradas para %s", len(grades), activity_id)
        return grades

    def activity_submissions_with_grades(self, activity_id) -> list[StudentGradeSummary]:
        """Promedio por estudiante evaluado, de mayor a menor.

        El promedio es la media aritmética de los valores crudos, sin
        normalizar por `max_grade`.
        """
        grades = latest_per_grader(self.grades_for_activity(activity_id))
        if not grades:
            return []

        # Agrupar por estudiante evaluado, en orden de aparición
        by_student = {}
        for grade in grades:
            by_student.setdefault(grade.student_id, []).append(grade)

        summaries = []
        for student_id, student_grades in by_student.items():
            scales = {g.max_grade for g in student_grades}
            if len(scales) > 1:
                logger.warning(
                    "Escalas distintas (%s) para %s en %s; se promedian valores crudos",
                    sorted(scales),
                    student_id,
                    activity_id,
                )
            summaries.append(
                StudentGradeSummary(
                    student_id=student_id,
                    average_grade=sum(g.grade for g in student_grades) / len(student_grades),
                    total_evaluations=len(student_grades),
                    grades_list=student_grades,
                )
            )

        # sorted es estable: los empates conservan el orden de agrupación
        return sorted(summaries, key=lambda s: s.average_grade, reverse=True)

    def standing_for_student(self, activity_id, student_id):
        ranked = self.activity_submissions_with_grades(activity_id)
        for position, summary in enumerate(ranked, start=1):
            if summary.student_id == student_id:
                return StudentStanding(summary=summary, rank=position, ranked_students=len(ranked))
        return None

    def get_my_grade_for_student(self, activity_id, student_id, graded_by):
        matches = [
            g
            for g in self.repo.grades_for_activity(activity_id)
            if g.student_id == student_id and g.graded_by == graded_by
        ]
        return matches[-1] if matches else None

    def save_grade(self, activity_id, student_id, grade, max_grade, graded_by):
        """Inserta o actualiza la calificación de (actividad, evaluado, evaluador)."""
        with self.locks.hold((activity_id, student_id, graded_by)):
            existing = self.get_my_grade_for_student(activity_id, student_id, graded_by)
            if existing is not None:
                self.store.update(
                    "grades", existing.id, {"grade": grade, "max_grade": max_grade}
                )
                logger.info(
                    "Calificación %s actualizada: %s/%s", existing.id, grade, max_grade
                )
            else:
                self.store.insert(
                    "grades",
                    [
                        {
                            "activity_id": activity_id,
                            "student_id": student_id,
                            "grade": grade,
                            "max_grade": max_grade,
                            "graded_by": graded_by,
                        }
                    ],
                )
                logger.info(
                    "Calificación creada: %s evaluó a %s con %s/%s en %s",
                    graded_by,
                    student_id,
                    grade,
                    max_grade,
                    activity_id,
                )
            return self.get_my_grade_for_student(activity_id, student_id, graded_by)

    def peers_to_evaluate(self, activity_id, grader_id):
        """Compañeros de grupo del evaluador en la categoría de la actividad.

        None si el evaluador no tiene grupo en esa categoría.
        """
        activity = self.repo.activity(activity_id)
        if activity is None:
            raise ActivityNotFoundError(activity_id)
        if activity.category_id is None:
            return None

        group_ids = {g.id for g in self.repo.groups_in_category(activity.category_id)}
        memberships = [m for m in self.repo.memberships() if m.group_id in group_ids]
        own = next((m for m in memberships if m.student_id == grader_id), None)
        if own is None:
            return None

        given = {
            g.student_id: g
            for g in self.repo.grades_for_activity(activity_id)
            if g.graded_by == grader_id
        }
        peers = []
        for membership in memberships:
            if membership.group_id != own.group_id or membership.student_id == grader_id:
                continue
            grade = given.get(membership.student_id)
            peers.append(
                PeerToEvaluate(
                    student_id=membership.student_id,
                    my_grade=grade.grade if grade else None,
                    max_grade=grade.max_grade if grade else None,
                )
            )
        return peers
