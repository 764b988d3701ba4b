# repository.py
from schemas import (
    ActivityRecord,
    CategoryRecord,
    EnrollmentRecord,
    GradeRecord,
    GroupRecord,
    MembershipRecord,
    parse_records,
)


class CourseRepository:
    """Lecturas tipadas sobre el almacén de registros.

    Cada llamada vuelve a leer la colección: no hay caché.
    """

    def __init__(self, store):
        self.store = store

    def _read(self, collection, model):
        return parse_records(model, self.store.read(collection), collection)

    # Categorías
    def categories(self):
        return self._read("categories", CategoryRecord)

    def categories_for_course(self, course_id):
        course_id = str(course_id).strip()
        return [c for c in self.categories() if c.course_id == course_id]

    def category(self, category_id):
        return next((c for c in self.categories() if c.id == category_id), None)

    # Grupos y membresías
    def groups(self):
        return self._read("groups", GroupRecord)

    def groups_in_category(self, category_id):
        return [g for g in self.groups() if g.category_id == category_id]

    def group(self, group_id):
        return next((g for g in self.groups() if g.id == group_id), None)

    def memberships(self):
        return self._read("group_members", MembershipRecord)

    def members_of(self, group_id):
        return [m for m in self.memberships() if m.group_id == group_id]

    # Actividades y calificaciones
    def activities(self):
        return self._read("activities", ActivityRecord)

    def activity(self, activity_id):
        return next((a for a in self.activities() if a.id == activity_id), None)

    def grades_for_activity(self, activity_id):
        return [g for g in self._read("grades", GradeRecord) if g.activity_id == activity_id]

    # Inscripciones
    def student_roster(self, course_id):
        """IDs de los estudiantes del curso, sin duplicados, en orden de lectura."""
        course_id = str(course_id).strip()
        roster = []
        seen = set()
        for enrollment in self._read("enrollments", EnrollmentRecord):
            if enrollment.course_id != course_id or not enrollment.is_student:
                continue
            if enrollment.student_id in seen:
                continue
            seen.add(enrollment.student_id)
            roster.append(enrollment.student_id)
        return roster
