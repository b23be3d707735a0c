# backend/app/routes/users.py
from flask import Blueprint, jsonify
from sqlalchemy import select

from backend.app.errors import AppError, ErrorCode
from backend.app.extensions import db
from backend.app.middleware.auth_middleware import require_role
from backend.app.models.user import Role, User

users_bp = Blueprint("users", __name__)


@users_bp.route("/<int:user_id>", methods=["GET"])
@require_role(Role.ADMIN)
def get_user(user_id: int):
    user = db.session.execute(
        select(User).where(User.id == user_id)
    ).scalar_one_or_none()

    if not user:
        raise AppError(
            ErrorCode.USER_NOT_FOUND,
            f"User {user_id} not found.",
            404
        )

    return jsonify({
        "data": {
            "id": user.id,
            "username": user.username,
            "email": user.email,
            "role": Role(user.role).value,
            "created_at": user.created_at.isoformat() if user.created_at else None,
        },
        "warnings": []
    }), 200
