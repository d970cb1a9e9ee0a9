"""Teacher-side student routes: search, transfer, unenroll, parent links."""

from __future__ import annotations

from flask import Blueprint, jsonify

from enrollment_store import EnrollmentStoreDB
from helpers import current_actor, json_body, parse_bool, teacher_required
from relationship_store import RelationshipStoreDB

bp = Blueprint("students", __name__)


@bp.route("/api/users/search-student", methods=["POST"])
@teacher_required
def search_student():
    student = EnrollmentStoreDB.search_student(current_actor(), json_body().get("email"))
    return jsonify({"success": True, "student": student})


@bp.route("/api/students/<int:student_id>/transfer/<int:new_classroom_id>", methods=["POST"])
@teacher_required
def transfer_student(student_id, new_classroom_id):
    reason = json_body().get("reason")
    result = EnrollmentStoreDB.transfer(current_actor(), student_id, new_classroom_id, reason)
    return jsonify({"success": True, **result})


@bp.route("/api/students/<int:student_id>/unenroll", methods=["DELETE"])
@teacher_required
def unenroll_student(student_id):
    reason = json_body().get("reason")
    result = EnrollmentStoreDB.unenroll(current_actor(), student_id, reason)
    return jsonify({"success": True, **result})


@bp.route("/api/students/<int:student_id>/enrollments")
def enrollment_history(student_id):
    history = EnrollmentStoreDB.history(current_actor(), student_id)
    return jsonify({"success": True, "enrollments": history})


# ── Parent links ───────────────────────────────────────────

@bp.route("/api/students/<int:student_id>/parents", methods=["POST"])
@teacher_required
def link_parent(student_id):
    data = json_body()
    relationship = RelationshipStoreDB.link(
        current_actor(),
        student_id,
        data.get("parent_id"),
        relationship_type=data.get("relationship_type"),
        is_primary=bool(parse_bool(data.get("is_primary"))),
        phone=data.get("phone"),
    )
    return jsonify({
        "success": True,
        "message": "Parent linked successfully",
        "relationship": relationship,
    })


@bp.route("/api/students/<int:student_id>/parents")
@teacher_required
def student_parents(student_id):
    parents = RelationshipStoreDB.parents_for(current_actor(), student_id)
    return jsonify({"success": True, "parents": parents})
