# membership.py
import logging

from errors import MembershipNotFoundError
from locks import category_locks
from repository import CourseRepository
from schemas import JoinOutcome, JoinResult

logger = logging.getLogger(__name__)


class GroupMembershipManager:
    """Mantiene las reglas de pertenencia a grupos dentro de una categoría.

    - Un estudiante tiene como máximo una membresía por categoría.
    - Un grupo admite miembros mientras su conteo sea menor que la
      capacidad de su categoría.
    """

    def __init__(self, store, locks=category_locks):
        self.store = store
        self.repo = CourseRepository(store)
        self.locks = locks

    def membership_in_category(self, student_id, category_id):
        group_ids = {g.id for g in self.repo.groups_in_category(category_id)}
        for membership in self.repo.memberships():
            if membership.group_id in group_ids and membership.student_id == student_id:
                return membership
        return None

    def place(self, group_id, student_id):
        """Inserta la membresía sin validar; quien llama garantiza las reglas."""
        self.store.insert("group_members", [{"group_id": group_id, "student_id": student_id}])

    def join(self, group_id, student_id) -> JoinResult:
        def result(outcome):
            return JoinResult(outcome=outcome, group_id=group_id, student_id=student_id)

        group = self.repo.group(group_id)
        if group is None:
            return result(JoinOutcome.GROUP_NOT_FOUND)
        category = self.repo.category(group.category_id)
        if category is None:
            return result(JoinOutcome.CATEGORY_NOT_FOUND)

        with self.locks.hold(category.id):
            if self.membership_in_category(student_id, category.id) is not None:
                logger.info(
                    "Estudiante %s ya tiene grupo en la categoría %s", student_id, category.id
                )
                return result(JoinOutcome.ALREADY_IN_CATEGORY)

            # Conteo leído en este momento, nunca de caché
            member_count = len(self.repo.members_of(group_id))
            if member_count >= category.capacity:
                logger.info(
                    "Grupo %s lleno (%s/%s)", group_id, member_count, category.capacity
                )
                return result(JoinOutcome.GROUP_FULL)

            self.place(group_id, student_id)

        logger.info("Estudiante %s unido al grupo %s", student_id, group_id)
        return result(JoinOutcome.JOINED)

    def leave(self, group_id, student_id):
        membership = next(
            (
                m
                for m in self.repo.members_of(group_id)
                if m.student_id == student_id
            ),
            None,
        )
        if membership is None:
            raise MembershipNotFoundError(group_id, student_id)
        self.store.delete("group_members", membership.id)
        logger.info("Estudiante %s salió del grupo %s", student_id, group_id)
        return membership

    def remove_member(self, group_id, student_id):
        """Retiro hecho por el profesor; mismas reglas que `leave`."""
        return self.leave(group_id, student_id)

    def remove_from_category(self, student_id, category_id) -> bool:
        membership = self.membership_in_category(student_id, category_id)
        if membership is None:
            return False
        self.store.delete("group_members", membership.id)
        logger.info(
            "Estudiante %s retirado del grupo %s (categoría %s)",
            student_id,
            membership.group_id,
            category_id,
        )
        return True

    def transfer(self, student_id, from_group_id, to_group_id) -> JoinResult:
        """Mueve a un estudiante de grupo en dos pasos, sin atomicidad.

        Entre la salida y la nueva unión el estudiante no tiene grupo; si la
        unión falla, queda sin grupo y el resultado indica el motivo.
        """
        self.leave(from_group_id, student_id)
        result = self.join(to_group_id, student_id)
        if not result.ok:
            logger.warning(
                "Traslado de %s a %s fallido (%s); el estudiante quedó sin grupo",
                student_id,
                to_group_id,
                result.outcome.value,
            )
        return result

    def available_students(self, category_id, course_id):
        """Estudiantes del curso que no tienen grupo en la categoría."""
        group_ids = {g.id for g in self.repo.groups_in_category(category_id)}
        occupied = {m.student_id for m in self.repo.memberships() if m.group_id in group_ids}
        return [s for s in self.repo.student_roster(course_id) if s not in occupied]

    def groups_for_student(self, student_id):
        group_ids = {m.group_id for m in self.repo.memberships() if m.student_id == student_id}
        return [g for g in self.repo.groups() if g.id in group_ids]
