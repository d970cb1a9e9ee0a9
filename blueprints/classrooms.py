"""Classroom routes: creation, listing, roster, enrollment into a classroom."""

from __future__ import annotations

from flask import Blueprint, jsonify

from classroom_store import ClassroomStoreDB
from enrollment_store import EnrollmentStoreDB
from helpers import child_required, current_actor, json_body, parse_int, teacher_required

bp = Blueprint("classrooms", __name__)


# ── Teacher: classroom management ──────────────────────────

@bp.route("/api/classrooms", methods=["POST"])
@teacher_required
def create_classroom():
    data = json_body()
    classroom = ClassroomStoreDB.create(
        current_actor(),
        name=data.get("name", ""),
        grade_level=data.get("grade_level", ""),
        section=data.get("section", ""),
        school_year=data.get("school_year", ""),
        max_students=data.get("max_students"),
    )
    return jsonify({
        "success": True,
        "message": "Classroom created successfully",
        "classroom": classroom,
    }), 201


@bp.route("/api/classrooms/my-classrooms")
@teacher_required
def my_classrooms():
    classrooms = ClassroomStoreDB.list_for_teacher(current_actor().id)
    return jsonify({"success": True, "classrooms": classrooms})


@bp.route("/api/classrooms/<int:classroom_id>", methods=["DELETE"])
@teacher_required
def deactivate_classroom(classroom_id):
    result = ClassroomStoreDB.deactivate(current_actor(), classroom_id)
    return jsonify({
        "success": True,
        "message": f'Classroom "{result["name"]}" has been deactivated',
        **result,
    })


@bp.route("/api/classrooms/<int:classroom_id>/students")
def classroom_students(classroom_id):
    students = ClassroomStoreDB.roster(current_actor(), classroom_id)
    return jsonify({"success": True, "students": students})


@bp.route("/api/classrooms/<int:classroom_id>/students", methods=["POST"])
@teacher_required
def enroll_student(classroom_id):
    student_id = parse_int(json_body().get("student_id"), "student_id")
    result = EnrollmentStoreDB.teacher_enroll(current_actor(), classroom_id, student_id)
    return jsonify({"success": True, **result})


# ── Student: browse and self-enroll ────────────────────────

@bp.route("/api/classrooms/available")
@child_required
def available_classrooms():
    classrooms = EnrollmentStoreDB.available_classrooms(current_actor())
    return jsonify({"success": True, "classrooms": classrooms})


@bp.route("/api/student/enroll/<int:classroom_id>", methods=["POST"])
@child_required
def self_enroll(classroom_id):
    result = EnrollmentStoreDB.self_enroll(current_actor(), classroom_id)
    return jsonify({"success": True, **result})
