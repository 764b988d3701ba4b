# models.py
import uuid

from sqlalchemy import Column, Float, Integer, String, Text

from db import Base


def new_record_id():
    return uuid.uuid4().hex


# Sin claves foráneas: el almacén no impone relaciones, las cascadas
# las ejecuta el servicio paso a paso.

class Category(Base):
    __tablename__ = "categories"

    id = Column(String, primary_key=True, default=new_record_id)
    course_id = Column(String, index=True)  # Vincula la categoría al curso
    name = Column(String)
    type = Column(String)  # Modo de asignación: "random" o "choice"
    capacity = Column(Integer)
    description = Column(Text)


class Group(Base):
    __tablename__ = "groups"

    id = Column(String, primary_key=True, default=new_record_id)
    category_id = Column(String, index=True)
    name = Column(String)
    description = Column(Text)


class GroupMember(Base):
    __tablename__ = "group_members"

    id = Column(String, primary_key=True, default=new_record_id)
    group_id = Column(String, index=True)
    student_id = Column(String, index=True)


class Activity(Base):
    __tablename__ = "activities"

    id = Column(String, primary_key=True, default=new_record_id)
    course_id = Column(String, index=True)
    category_id = Column(String, index=True, nullable=True)
    title = Column(String)
    description = Column(Text)
    due_date = Column(String, nullable=True)  # ISO-8601 tal como llega


class Grade(Base):
    __tablename__ = "grades"

    id = Column(String, primary_key=True, default=new_record_id)
    activity_id = Column(String, index=True)
    student_id = Column(String, index=True)  # Estudiante evaluado
    grade = Column(Float)
    max_grade = Column(Float)
    graded_by = Column(String, index=True)  # Estudiante que evalúa


class Enrollment(Base):
    __tablename__ = "enrollments"

    id = Column(String, primary_key=True, default=new_record_id)
    course_id = Column(String, index=True)
    student_id = Column(String, index=True)
    role = Column(String)


COLLECTIONS = {
    "categories": Category,
    "groups": Group,
    "group_members": GroupMember,
    "activities": Activity,
    "grades": Grade,
    "enrollments": Enrollment,
}
