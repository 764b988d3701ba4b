# partitioner.py
import logging
import random

from errors import RecordStoreError
from membership import GroupMembershipManager
from repository import CourseRepository
from schemas import AssignmentMode, GroupAssignment, PartitionResult, normalize_mode

logger = logging.getLogger(__name__)


def group_count_for(student_count, capacity):
    """Cantidad de grupos necesaria: ceil(estudiantes / capacidad)."""
    if capacity < 1:
        raise ValueError("La capacidad debe ser al menos 1")
    return -(-student_count // capacity)


def group_name(number):
    return f"Group {number}"


def fill_sequentially(student_ids, group_ids, capacity):
    """Llena el grupo i hasta la capacidad antes de pasar al grupo i+1.

    Devuelve las asignaciones por grupo y los estudiantes que no cupieron.
    """
    assignments = {group_id: [] for group_id in group_ids}
    unassigned = []
    index = 0
    for student_id in student_ids:
        # Si el grupo actual está lleno, pasar al siguiente
        while index < len(group_ids) and len(assignments[group_ids[index]]) >= capacity:
            index += 1
        if index >= len(group_ids):
            unassigned.append(student_id)
            continue
        assignments[group_ids[index]].append(student_id)
    return assignments, unassigned


class GroupPartitioner:
    def __init__(self, store, memberships=None, rng=None):
        self.store = store
        self.repo = CourseRepository(store)
        self.memberships = memberships or GroupMembershipManager(store)
        self.rng = rng or random.Random()

    def create_groups_for_category(
        self, category_id, course_id, capacity, mode, roster=None
    ) -> PartitionResult:
        """Crea los grupos de una categoría y, en modo aleatorio, los llena.

        Un fallo al crear un grupo o una membresía se registra y se omite;
        los grupos ya creados se conservan.
        """
        mode = AssignmentMode(normalize_mode(mode))
        if roster is None:
            roster = self.repo.student_roster(course_id)
        total_groups = group_count_for(len(roster), capacity)
        result = PartitionResult(category_id=category_id)

        logger.info(
            "Categoría %s: %s estudiantes, capacidad %s, %s grupos a crear",
            category_id,
            len(roster),
            capacity,
            total_groups,
        )
        if total_groups == 0:
            return result

        names = [group_name(number) for number in range(1, total_groups + 1)]
        for name in names:
            try:
                self.store.insert("groups", [{"category_id": category_id, "name": name}])
            except RecordStoreError:
                logger.exception("No se pudo crear %s en la categoría %s", name, category_id)
                result.failed_writes += 1

        try:
            existing = self.repo.groups_in_category(category_id)
        except RecordStoreError:
            logger.exception("No se pudieron leer los grupos creados de %s", category_id)
            result.unassigned = list(roster)
            return result

        # El almacén asigna los IDs: se recuperan por nombre (el último gana)
        by_name = {group.name: group for group in existing}
        created = [by_name[name] for name in names if name in by_name]
        result.groups = [GroupAssignment(group_id=g.id, name=g.name) for g in created]

        if mode is AssignmentMode.CHOICE:
            logger.info("Grupos de %s creados vacíos para elección", category_id)
            result.unassigned = list(roster)
            return result

        shuffled = list(roster)
        self.rng.shuffle(shuffled)
        assignments, unassigned = fill_sequentially(
            shuffled, [g.group_id for g in result.groups], capacity
        )
        if unassigned:
            logger.warning(
                "%s estudiante(s) sin grupo en la categoría %s", len(unassigned), category_id
            )
        result.unassigned = unassigned

        # Las uniones manuales de la misma categoría esperan a que termine el reparto
        with self.memberships.locks.hold(category_id):
            for group in result.groups:
                for student_id in assignments[group.group_id]:
                    try:
                        self.memberships.place(group.group_id, student_id)
                    except RecordStoreError:
                        logger.exception(
                            "No se pudo asignar %s a %s", student_id, group.name
                        )
                        result.failed_writes += 1
                        result.unassigned.append(student_id)
                        continue
                    group.student_ids.append(student_id)

        logger.info("Asignación aleatoria completada para %s", category_id)
        return result
