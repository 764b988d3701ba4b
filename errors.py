# errors.py


class GroupServiceError(Exception):
    """Base de los errores del servicio de grupos."""


class RecordStoreError(GroupServiceError):
    """Fallo del almacén de registros (lectura o escritura)."""


class RecordNotFoundError(RecordStoreError):
    def __init__(self, collection, record_id):
        super().__init__(f"No existe el registro {record_id} en {collection}")
        self.collection = collection
        self.record_id = record_id


class NotFoundError(GroupServiceError):
    pass


class CategoryNotFoundError(NotFoundError):
    def __init__(self, category_id):
        super().__init__(f"No se encontró la categoría {category_id}")
        self.category_id = category_id


class GroupNotFoundError(NotFoundError):
    def __init__(self, group_id):
        super().__init__(f"No se encontró el grupo {group_id}")
        self.group_id = group_id


class ActivityNotFoundError(NotFoundError):
    def __init__(self, activity_id):
        super().__init__(f"No se encontró la actividad {activity_id}")
        self.activity_id = activity_id


class MembershipNotFoundError(NotFoundError):
    def __init__(self, group_id, student_id):
        super().__init__(
            f"El estudiante {student_id} no pertenece al grupo {group_id}"
        )
        self.group_id = group_id
        self.student_id = student_id


class CascadeDeleteError(GroupServiceError):
    """Una eliminación en cascada terminó con pasos fallidos.

    Los pasos restantes sí se ejecutaron; `failed` lista los registros
    que quedaron sin eliminar.
    """

    def __init__(self, root_id, failed):
        self.root_id = root_id
        self.failed = list(failed)
        super().__init__(
            f"Eliminación incompleta de {root_id}: {len(self.failed)} registro(s) sin eliminar"
        )
