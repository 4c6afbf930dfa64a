import logging
from http import HTTPStatus

from flask import Blueprint, Response, request
from werkzeug.exceptions import HTTPException

from users_api.audit_logging import Context
from users_api.errors import APIError, ValidationError
from users_api.service.user import UserService
from users_api.utils import error_response, no_content_response, success_response

logger = logging.getLogger(__name__)

users_bp = Blueprint("users", __name__, url_prefix="/users")


@users_bp.before_request
def _log_user_id():
    context = Context.from_request()
    if context is not None and request.view_args and "user_id" in request.view_args:
        context.add_log_field("userId", request.view_args["user_id"])


def _json_body() -> dict:
    body = request.get_json(silent=True)
    if body is None:
        body = {}
    if not isinstance(body, dict):
        raise ValidationError("Request body must be a JSON object")
    return body


@users_bp.route("", methods=["GET"])
def list_users():
    logger.debug(f"{request.path} - {request.method}")
    user_service = UserService()
    if request.args.get("filter") == "active":
        return success_response(user_service.list_active_users())
    return success_response(user_service.list_users(request.args))


@users_bp.route("", methods=["POST"])
def create_user():
    logger.debug(f"{request.path} - {request.method}")
    user = UserService().insert_user(_json_body())
    context = Context.from_request()
    if context is not None:
        context.add_audit_log_response_field("userId", user["id"])
    return success_response(user)


@users_bp.route("/<int:user_id>", methods=["GET"])
def get_user(user_id: int):
    return success_response(UserService().get_user(user_id))


@users_bp.route("/<int:user_id>", methods=["PATCH"])
def update_user(user_id: int):
    return success_response(UserService().update_user(user_id, _json_body()))


@users_bp.route("/<int:user_id>", methods=["DELETE"])
def delete_user(user_id: int):
    UserService().delete_user(user_id)
    return no_content_response()


@users_bp.route("/<int:user_id>/status", methods=["PATCH"])
def change_status(user_id: int):
    return success_response(UserService().change_status(user_id, _json_body()))


@users_bp.route("/<int:user_id>/tasks", methods=["GET"])
def list_user_tasks(user_id: int):
    return success_response(UserService().list_user_tasks(user_id))


@users_bp.app_errorhandler(APIError)
def handle_api_error(ex: APIError) -> Response:
    logger.info("%s %s failed with %s: %s", request.method, request.path, int(ex.status), ex.message)
    return error_response(ex.message, ex.status)


@users_bp.app_errorhandler(Exception)
def handle_unexpected_error(ex: Exception):
    # routing errors (404/405) keep their own response
    if isinstance(ex, HTTPException):
        return ex
    logger.exception("Unhandled error on %s %s", request.method, request.path)
    return error_response("Internal server error", HTTPStatus.INTERNAL_SERVER_ERROR)
