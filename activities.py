# activities.py
import logging

from errors import ActivityNotFoundError, RecordNotFoundError
from repository import CourseRepository
from schemas import parse_due_date

logger = logging.getLogger(__name__)

UPDATABLE_FIELDS = ("title", "description", "due_date", "category_id")


def _due_date_value(value):
    parsed = parse_due_date(value)
    return parsed.isoformat() if parsed is not None else None


class ActivityService:
    """Alta, edición y baja de actividades; no toca las calificaciones."""

    def __init__(self, store):
        self.store = store
        self.repo = CourseRepository(store)

    def get_activity(self, activity_id):
        return self.repo.activity(activity_id)

    def create_activity(self, course_id, title, description=None, due_date=None, category_id=None):
        payload = {
            "course_id": course_id,
            "title": title,
            "description": description,
            "due_date": _due_date_value(due_date),
            "category_id": category_id,
        }
        logger.info("Creando actividad %s en el curso %s", title, course_id)
        self.store.insert("activities", [payload])

        created = [
            a
            for a in self.repo.activities()
            if a.course_id == str(course_id).strip() and a.title == title
        ]
        return created[-1] if created else None

    def update_activity(self, activity_id, **fields):
        """Actualiza solo los campos recibidos; un None explícito los borra."""
        payload = {}
        for name in UPDATABLE_FIELDS:
            if name in fields:
                value = fields[name]
                payload[name] = _due_date_value(value) if name == "due_date" else value
        if not payload:
            return
        logger.info("Actualizando actividad %s: %s", activity_id, sorted(payload))
        try:
            self.store.update("activities", activity_id, payload)
        except RecordNotFoundError:
            raise ActivityNotFoundError(activity_id) from None

    def delete_activity(self, activity_id):
        try:
            self.store.delete("activities", activity_id)
        except RecordNotFoundError:
            raise ActivityNotFoundError(activity_id) from None
        logger.info("Actividad %s eliminada", activity_id)
