# main.py
import logging
from typing import Optional

from fastapi import Depends, FastAPI, HTTPException, Query, Response
from fastapi.responses import JSONResponse

from activities import ActivityService
from aggregates import CategoryAggregator
from categories import CategoryService
from config import settings
from db import Base, SessionLocal, engine
from errors import CascadeDeleteError, NotFoundError, RecordStoreError
from grading import PeerGradeAggregator
from membership import GroupMembershipManager
from repository import CourseRepository
from schemas import (
    ActivityRecord,
    ActivityStats,
    ActivityView,
    CategoryCreated,
    CategoryView,
    CreateActivityRequest,
    CreateCategoryRequest,
    CreateGroupRequest,
    GradeRecord,
    GroupRecord,
    GroupView,
    JoinGroupRequest,
    JoinOutcome,
    JoinResult,
    PartitionResult,
    PeerToEvaluate,
    SaveGradeRequest,
    StudentGradeSummary,
    StudentStanding,
    TransferRequest,
    UpdateActivityRequest,
    UpdateCategoryRequest,
    UpdateGroupRequest,
)
from store import HttpRecordStore, SqlRecordStore

logging.basicConfig(
    level=settings.LOG_LEVEL,
    format="%(asctime)s %(levelname)s %(name)s: %(message)s",
)
logger = logging.getLogger(__name__)

app = FastAPI(title="Course Groups Microservice")


def build_store():
    if settings.RECORD_STORE == "http":
        if not settings.RECORD_STORE_URL:
            raise RuntimeError("RECORD_STORE=http requiere RECORD_STORE_URL")
        return HttpRecordStore(
            settings.RECORD_STORE_URL,
            token=settings.RECORD_STORE_TOKEN,
            timeout=settings.REQUEST_TIMEOUT,
        )
    # Crear las tablas en la BD (si no existen)
    Base.metadata.create_all(bind=engine)
    return SqlRecordStore(SessionLocal)


record_store = build_store()


# Dependencia para obtener el almacén de registros
def get_store():
    return record_store


JOIN_MESSAGES = {
    JoinOutcome.GROUP_NOT_FOUND: "No se encontró el grupo",
    JoinOutcome.CATEGORY_NOT_FOUND: "No se encontró la categoría del grupo",
    JoinOutcome.ALREADY_IN_CATEGORY: "El estudiante ya pertenece a un grupo de esta categoría",
    JoinOutcome.GROUP_FULL: "El grupo alcanzó su capacidad máxima",
}


def raise_for_join(result: JoinResult):
    if result.ok:
        return
    status_code = 404 if result.outcome in (
        JoinOutcome.GROUP_NOT_FOUND,
        JoinOutcome.CATEGORY_NOT_FOUND,
    ) else 409
    raise HTTPException(
        status_code=status_code,
        detail={"outcome": result.outcome.value, "message": JOIN_MESSAGES[result.outcome]},
    )


@app.exception_handler(NotFoundError)
async def not_found_handler(request, exc):
    return JSONResponse(status_code=404, content={"detail": str(exc)})


@app.exception_handler(RecordStoreError)
async def store_error_handler(request, exc):
    logger.error("Error del almacén de registros: %s", exc)
    return JSONResponse(status_code=502, content={"detail": str(exc)})


@app.exception_handler(CascadeDeleteError)
async def cascade_error_handler(request, exc):
    return JSONResponse(
        status_code=500,
        content={"detail": str(exc), "root_id": exc.root_id, "failed": exc.failed},
    )


# ---------------------------------------------------------------------------
# Categorías
# ---------------------------------------------------------------------------

@app.post("/categories", response_model=CategoryCreated, status_code=201)
def create_category(request: CreateCategoryRequest, store=Depends(get_store)):
    return CategoryService(store).create_category(
        request.course_id,
        request.name,
        mode=request.mode,
        capacity=request.capacity,
        description=request.description,
    )


@app.get("/courses/{course_id}/categories", response_model=list[CategoryView])
def list_categories(course_id: str, store=Depends(get_store)):
    return CategoryAggregator(store).categories_for_course(course_id)


@app.get("/courses/{course_id}/categories/summary", response_model=dict[str, int])
def categories_summary(course_id: str, store=Depends(get_store)):
    return CategoryAggregator(store).summary_by_mode(course_id)


@app.get("/categories/{category_id}", response_model=CategoryView)
def get_category(category_id: str, store=Depends(get_store)):
    category = CategoryAggregator(store).category_detail(category_id)
    if category is None:
        raise HTTPException(status_code=404, detail="Categoría no encontrada")
    return category


@app.patch("/categories/{category_id}", status_code=204)
def update_category(category_id: str, request: UpdateCategoryRequest, store=Depends(get_store)):
    CategoryService(store).update_category(category_id, **request.model_dump(exclude_unset=True))
    return Response(status_code=204)


@app.delete("/categories/{category_id}", status_code=204)
def delete_category(category_id: str, store=Depends(get_store)):
    CategoryService(store).delete_category(category_id)
    return Response(status_code=204)


@app.post("/categories/{category_id}/regroup", response_model=PartitionResult)
def regroup_category(category_id: str, store=Depends(get_store)):
    return CategoryService(store).regroup(category_id)


@app.get("/categories/{category_id}/groups", response_model=list[GroupView])
def list_groups(category_id: str, store=Depends(get_store)):
    return CategoryAggregator(store).groups_in_category(category_id)


@app.post("/categories/{category_id}/groups", response_model=GroupRecord, status_code=201)
def create_group(category_id: str, request: CreateGroupRequest, store=Depends(get_store)):
    return CategoryService(store).create_group(category_id, request.name, request.description)


@app.get("/categories/{category_id}/available-students", response_model=list[str])
def available_students(
    category_id: str, course_id: Optional[str] = None, store=Depends(get_store)
):
    if course_id is None:
        category = CourseRepository(store).category(category_id)
        if category is None:
            raise HTTPException(status_code=404, detail="Categoría no encontrada")
        course_id = category.course_id
    return GroupMembershipManager(store).available_students(category_id, course_id)


@app.get("/categories/{category_id}/activities", response_model=list[ActivityRecord])
def category_activities(category_id: str, store=Depends(get_store)):
    return CategoryAggregator(store).activities_in_category(category_id)


# ---------------------------------------------------------------------------
# Grupos y membresías
# ---------------------------------------------------------------------------

@app.patch("/groups/{group_id}", status_code=204)
def update_group(group_id: str, request: UpdateGroupRequest, store=Depends(get_store)):
    CategoryService(store).update_group(group_id, request.name, request.description)
    return Response(status_code=204)


@app.delete("/groups/{group_id}", status_code=204)
def delete_group(group_id: str, store=Depends(get_store)):
    CategoryService(store).delete_group(group_id)
    return Response(status_code=204)


@app.post("/groups/{group_id}/members", response_model=JoinResult, status_code=201)
def join_group(group_id: str, request: JoinGroupRequest, store=Depends(get_store)):
    result = GroupMembershipManager(store).join(group_id, request.student_id)
    raise_for_join(result)
    return result


@app.delete("/groups/{group_id}/members/{student_id}", status_code=204)
def remove_member(group_id: str, student_id: str, store=Depends(get_store)):
    GroupMembershipManager(store).remove_member(group_id, student_id)
    return Response(status_code=204)


@app.post("/students/{student_id}/transfer", response_model=JoinResult)
def transfer_student(student_id: str, request: TransferRequest, store=Depends(get_store)):
    result = GroupMembershipManager(store).transfer(
        student_id, request.from_group_id, request.to_group_id
    )
    raise_for_join(result)
    return result


# Endpoint para obtener el/los grupo(s) al que pertenece un alumno
@app.get("/students/{student_id}/groups", response_model=list[GroupRecord])
def student_groups(student_id: str, store=Depends(get_store)):
    return GroupMembershipManager(store).groups_for_student(student_id)


# ---------------------------------------------------------------------------
# Actividades
# ---------------------------------------------------------------------------

@app.post("/activities", response_model=ActivityRecord, status_code=201)
def create_activity(request: CreateActivityRequest, store=Depends(get_store)):
    activity = ActivityService(store).create_activity(
        request.course_id,
        request.title,
        description=request.description,
        due_date=request.due_date,
        category_id=request.category_id,
    )
    if activity is None:
        raise HTTPException(status_code=502, detail="La actividad no aparece después de crearla")
    return activity


@app.get("/courses/{course_id}/activities", response_model=list[ActivityView])
def course_activities(course_id: str, store=Depends(get_store)):
    return CategoryAggregator(store).activities_for_course(course_id)


@app.get("/courses/{course_id}/activities/stats", response_model=ActivityStats)
def course_activity_stats(course_id: str, store=Depends(get_store)):
    return CategoryAggregator(store).course_activity_stats(course_id)


@app.get("/activities/{activity_id}", response_model=ActivityRecord)
def get_activity(activity_id: str, store=Depends(get_store)):
    activity = ActivityService(store).get_activity(activity_id)
    if activity is None:
        raise HTTPException(status_code=404, detail="Actividad no encontrada")
    return activity


@app.patch("/activities/{activity_id}", status_code=204)
def update_activity(activity_id: str, request: UpdateActivityRequest, store=Depends(get_store)):
    ActivityService(store).update_activity(activity_id, **request.model_dump(exclude_unset=True))
    return Response(status_code=204)


@app.delete("/activities/{activity_id}", status_code=204)
def delete_activity(activity_id: str, store=Depends(get_store)):
    ActivityService(store).delete_activity(activity_id)
    return Response(status_code=204)


# ---------------------------------------------------------------------------
# Calificaciones entre pares
# ---------------------------------------------------------------------------

@app.get("/activities/{activity_id}/grades", response_model=list[GradeRecord])
def activity_grades(activity_id: str, store=Depends(get_store)):
    return PeerGradeAggregator(store).grades_for_activity(activity_id)


@app.put("/activities/{activity_id}/grades", response_model=Optional[GradeRecord])
def save_grade(activity_id: str, request: SaveGradeRequest, store=Depends(get_store)):
    return PeerGradeAggregator(store).save_grade(
        activity_id, request.student_id, request.grade, request.max_grade, request.graded_by
    )


@app.get("/activities/{activity_id}/grades/{student_id}", response_model=Optional[GradeRecord])
def my_grade_for_student(
    activity_id: str, student_id: str, graded_by: str = Query(...), store=Depends(get_store)
):
    return PeerGradeAggregator(store).get_my_grade_for_student(activity_id, student_id, graded_by)


@app.get("/activities/{activity_id}/results", response_model=list[StudentGradeSummary])
def activity_results(activity_id: str, store=Depends(get_store)):
    return PeerGradeAggregator(store).activity_submissions_with_grades(activity_id)


@app.get("/activities/{activity_id}/results/{student_id}", response_model=Optional[StudentStanding])
def student_standing(activity_id: str, student_id: str, store=Depends(get_store)):
    return PeerGradeAggregator(store).standing_for_student(activity_id, student_id)


@app.get("/activities/{activity_id}/peers", response_model=Optional[list[PeerToEvaluate]])
def peers_to_evaluate(activity_id: str, grader_id: str = Query(...), store=Depends(get_store)):
    return PeerGradeAggregator(store).peers_to_evaluate(activity_id, grader_id)


if __name__ == "__main__":
    import uvicorn

    uvicorn.run("main:app", host=settings.HOST, port=settings.PORT, reload=True)
