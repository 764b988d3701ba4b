# categories.py
import logging

from errors import (
    CascadeDeleteError,
    CategoryNotFoundError,
    GroupNotFoundError,
    RecordNotFoundError,
    RecordStoreError,
)
from membership import GroupMembershipManager
from partitioner import GroupPartitioner
from repository import CourseRepository
from schemas import DEFAULT_CAPACITY, AssignmentMode, CategoryCreated, normalize_mode

logger = logging.getLogger(__name__)


class CategoryService:
    """Ciclo de vida de categorías y grupos, con sus cascadas."""

    def __init__(self, store, partitioner=None, memberships=None):
        self.store = store
        self.repo = CourseRepository(store)
        self.memberships = memberships or GroupMembershipManager(store)
        self.partitioner = partitioner or GroupPartitioner(store, memberships=self.memberships)

    # ------------------------------------------------------------------
    # Categorías
    # ------------------------------------------------------------------

    def create_category(
        self, course_id, name, mode=AssignmentMode.CHOICE, capacity=DEFAULT_CAPACITY, description=None
    ) -> CategoryCreated:
        mode = AssignmentMode(normalize_mode(mode))
        if capacity < 1:
            raise ValueError("La capacidad debe ser al menos 1")

        record = {"course_id": course_id, "name": name, "type": mode.value, "capacity": capacity}
        if description:
            record["description"] = description
        logger.info("Creando categoría %s en el curso %s", name, course_id)
        self.store.insert("categories", [record])

        created = [
            c for c in self.repo.categories_for_course(course_id) if c.name == name
        ]
        if not created:
            raise RecordStoreError(f"La categoría {name} no aparece después de insertarla")
        category = created[-1]

        # La categoría es utilizable aunque la creación de grupos falle
        try:
            partition = self.partitioner.create_groups_for_category(
                category.id, course_id, category.capacity, category.mode
            )
        except RecordStoreError as e:
            logger.exception("Error creando grupos automáticamente para %s", category.id)
            return CategoryCreated(
                category=category,
                partition_error=f"No se pudieron crear los grupos: {e}",
            )
        return CategoryCreated(category=category, partition=partition)

    def update_category(self, category_id, **fields):
        updates = {}
        if fields.get("name") is not None:
            updates["name"] = fields["name"]
        if fields.get("mode") is not None:
            updates["type"] = AssignmentMode(normalize_mode(fields["mode"])).value
        if fields.get("capacity") is not None:
            if fields["capacity"] < 1:
                raise ValueError("La capacidad debe ser al menos 1")
            updates["capacity"] = fields["capacity"]
        if "description" in fields:
            updates["description"] = fields["description"]
        if not updates:
            return

        logger.info("Actualizando categoría %s: %s", category_id, updates)
        try:
            self.store.update("categories", category_id, updates)
        except RecordNotFoundError:
            raise CategoryNotFoundError(category_id) from None

    def delete_category(self, category_id):
        """Elimina grupos (y sus miembros) y después la categoría.

        Cada paso se intenta aunque uno anterior haya fallado; al final se
        informa qué registros no se pudieron eliminar.
        """
        if self.repo.category(category_id) is None:
            raise CategoryNotFoundError(category_id)

        groups = self.repo.groups_in_category(category_id)
        logger.info("Eliminando categoría %s con %s grupos", category_id, len(groups))

        failed = []
        for group in groups:
            try:
                self.delete_group(group.id)
            except CascadeDeleteError as e:
                failed.extend(e.failed)
            except GroupNotFoundError:
                logger.info("El grupo %s ya no existe", group.id)
            except RecordStoreError:
                logger.exception("No se pudo eliminar el grupo %s", group.id)
                failed.append(group.id)

        try:
            self.store.delete("categories", category_id)
        except RecordStoreError:
            logger.exception("No se pudo eliminar la categoría %s", category_id)
            failed.append(category_id)

        if failed:
            raise CascadeDeleteError(category_id, failed)
        logger.info("Categoría %s eliminada", category_id)

    def regroup(self, category_id):
        """Borra los grupos existentes y vuelve a repartir a los estudiantes."""
        category = self.repo.category(category_id)
        if category is None:
            raise CategoryNotFoundError(category_id)

        failed = []
        for group in self.repo.groups_in_category(category_id):
            try:
                self.delete_group(group.id)
            except CascadeDeleteError as e:
                failed.extend(e.failed)
        if failed:
            # Repartir sobre grupos a medio borrar duplicaría membresías
            raise CascadeDeleteError(category_id, failed)

        return self.partitioner.create_groups_for_category(
            category.id, category.course_id, category.capacity, category.mode
        )

    # ------------------------------------------------------------------
    # Grupos
    # ------------------------------------------------------------------

    def create_group(self, category_id, name, description=None):
        category = self.repo.category(category_id)
        if category is None:
            raise CategoryNotFoundError(category_id)

        record = {"category_id": category_id, "name": name}
        if description:
            record["description"] = description
        self.store.insert("groups", [record])

        created = [g for g in self.repo.groups_in_category(category_id) if g.name == name]
        if not created:
            raise RecordStoreError(f"El grupo {name} no aparece después de insertarlo")
        group = created[-1]

        if category.mode is AssignmentMode.RANDOM:
            self._fill_from_available(category, group.id)
        logger.info("Grupo %s creado en la categoría %s", group.id, category_id)
        return group

    def _fill_from_available(self, category, group_id):
        available = self.memberships.available_students(category.id, category.course_id)
        for student_id in available[: category.capacity]:
            result = self.memberships.join(group_id, student_id)
            if not result.ok:
                logger.info(
                    "No se asignó %s a %s: %s", student_id, group_id, result.outcome.value
                )

    def update_group(self, group_id, name=None, description=None):
        updates = {}
        if name:
            updates["name"] = name
        if description is not None:
            updates["description"] = description
        if not updates:
            return
        try:
            self.store.update("groups", group_id, updates)
        except RecordNotFoundError:
            raise GroupNotFoundError(group_id) from None

    def delete_group(self, group_id):
        """Elimina primero las membresías del grupo y luego el grupo."""
        if self.repo.group(group_id) is None:
            raise GroupNotFoundError(group_id)

        members = self.repo.members_of(group_id)
        logger.info("Eliminando grupo %s con %s miembros", group_id, len(members))

        failed = []
        for member in members:
            try:
                self.store.delete("group_members", member.id)
            except RecordStoreError:
                logger.exception("No se pudo eliminar la membresía %s", member.id)
                failed.append(member.id)

        try:
            self.store.delete("groups", group_id)
        except RecordNotFoundError:
            if not failed:
                raise GroupNotFoundError(group_id) from None
            failed.append(group_id)
        except RecordStoreError:
            logger.exception("No se pudo eliminar el grupo %s", group_id)
            failed.append(group_id)

        if failed:
            raise CascadeDeleteError(group_id, failed)
