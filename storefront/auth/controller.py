from quart import Blueprint, g, jsonify

from ..common.validation import parse_body
from .guards import require_user
from .schemas import ChangePasswordRequest, LoginRequest, ProfileUpdate, RegisterRequest
from .service import authenticate, change_password, create_access_token, register_user, update_profile

bp = Blueprint("auth", __name__, url_prefix="/api/auth")


@bp.post("/register")
async def register():
    data = await parse_body(RegisterRequest)
    user = await register_user(data)
    return jsonify({
        "message": "User registered successfully",
        "user": user.to_public(),
        "token": create_access_token(user.id),
    }), 201


@bp.post("/login")
async def login():
    data = await parse_body(LoginRequest)
    user = await authenticate(data.email, data.password)
    return jsonify({
        "message": "Login successful",
        "user": user.to_public(),
        "token": create_access_token(user.id),
    })


@bp.get("/profile")
@require_user
async def profile():
    return jsonify({"message": "Profile retrieved successfully", "user": g.user.to_dict()})


@bp.put("/profile")
@require_user
async def profile_update():
    data = await parse_body(ProfileUpdate)
    user = await update_profile(g.user.id, data)
    return jsonify({"message": "Profile updated successfully", "user": user.to_dict()})


@bp.put("/change-password")
@require_user
async def password_change():
    data = await parse_body(ChangePasswordRequest)
    await change_password(g.user.id, data.currentPassword, data.newPassword)
    return jsonify({"message": "Password changed successfully"})


@bp.post("/logout")
@require_user
async def logout():
    # Tokens are stateless; the client discards its copy
    return jsonify({"message": "Logged out successfully"})
