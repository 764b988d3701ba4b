# aggregates.py
import logging
from collections import Counter
from datetime import datetime, timezone

from errors import RecordStoreError
from repository import CourseRepository
from schemas import DEFAULT_CAPACITY, ActivityStats, ActivityView, CategoryView, GroupView

logger = logging.getLogger(__name__)


def utc_now():
    return datetime.now(timezone.utc)


def by_name(record):
    return (record.name or "").casefold()


def by_due_date(activity):
    # Sin fecha de entrega al final
    if activity.due_date is None:
        return (1, datetime.max.replace(tzinfo=timezone.utc))
    return (0, activity.due_date)


def activity_stats(activities, now) -> ActivityStats:
    """Sin fecha de entrega cuenta como pendiente, nunca como vencida."""
    stats = ActivityStats(total=len(activities))
    for activity in activities:
        if activity.due_date is not None and activity.due_date < now:
            stats.overdue += 1
        else:
            stats.pending += 1
    return stats


class CategoryAggregator:
    """Estadísticas derivadas de categorías y grupos; se recalculan en cada llamada."""

    def __init__(self, store, clock=utc_now):
        self.store = store
        self.repo = CourseRepository(store)
        self.clock = clock

    def _lookup(self, description, read, default):
        # Una consulta secundaria fallida no debe abortar todo el listado
        try:
            return read()
        except RecordStoreError:
            logger.warning("Error obteniendo %s; se usan valores vacíos", description, exc_info=True)
            return default

    def _decorate(self, categories):
        activities = self._lookup("actividades", self.repo.activities, [])
        groups = self._lookup("grupos", self.repo.groups, [])
        memberships = self._lookup("miembros de grupo", self.repo.memberships, [])

        member_counts = Counter(m.group_id for m in memberships)
        now = self.clock()
        decorated = []
        for category in categories:
            stats = activity_stats([a for a in activities if a.category_id == category.id], now)
            category_groups = [g for g in groups if g.category_id == category.id]
            decorated.append(
                CategoryView(
                    **category.model_dump(),
                    activity_count=stats.total,
                    pending_activities=stats.pending,
                    overdue_activities=stats.overdue,
                    group_count=len(category_groups),
                    total_members=sum(member_counts[g.id] for g in category_groups),
                )
            )
        return decorated

    def categories_for_course(self, course_id) -> list[CategoryView]:
        categories = self.repo.categories_for_course(course_id)
        return sorted(self._decorate(categories), key=by_name)

    def category_detail(self, category_id):
        category = self.repo.category(category_id)
        if category is None:
            return None
        return self._decorate([category])[0]

    def summary_by_mode(self, course_id):
        """Cantidad de categorías del curso por modo de asignación."""
        counts = Counter(c.mode.value for c in self.repo.categories_for_course(course_id))
        return dict(counts)

    def groups_in_category(self, category_id) -> list[GroupView]:
        groups = self.repo.groups_in_category(category_id)
        if not groups:
            return []

        category = self._lookup("categoría", lambda: self.repo.category(category_id), None)
        capacity = category.capacity if category is not None else DEFAULT_CAPACITY
        memberships = self._lookup("miembros de grupo", self.repo.memberships, [])

        views = []
        for group in groups:
            members = [m for m in memberships if m.group_id == group.id]
            views.append(
                GroupView(
                    **group.model_dump(),
                    members=members,
                    member_count=len(members),
                    capacity=capacity,
                    capacity_percentage=round(len(members) / capacity * 100),
                )
            )
        return sorted(views, key=by_name)

    def activities_in_category(self, category_id):
        activities = [a for a in self.repo.activities() if a.category_id == category_id]
        return sorted(activities, key=by_due_date)

    def activities_for_course(self, course_id) -> list[ActivityView]:
        course_id = str(course_id).strip()
        activities = [a for a in self.repo.activities() if a.course_id == course_id]
        categories = {
            c.id: c for c in self._lookup("categorías", self.repo.categories, [])
        }
        views = []
        for activity in activities:
            category = categories.get(activity.category_id)
            views.append(
                ActivityView(
                    **activity.model_dump(),
                    category_name=category.name if category else None,
                    category_mode=category.mode if category else None,
                )
            )
        return sorted(views, key=by_due_date)

    def course_activity_stats(self, course_id) -> ActivityStats:
        course_id = str(course_id).strip()
        activities = [a for a in self.repo.activities() if a.course_id == course_id]
        return activity_stats(activities, self.clock())
