"""
TeamHub Collaboration Platform
Chat Blueprint — direct messaging and bound request threads.

Routes:
    GET  /api/v1/chats?type=&status=&tab=    caller's chats (tab: all|active|invitations|requests)
    POST /api/v1/chats                       get-or-create direct chat {participant_id}
    GET  /api/v1/chats/<id>                  chat with messages (participants only)
    GET  /api/v1/chats/<id>/messages         messages, oldest first
    POST /api/v1/chats/<id>/messages         append message {text}
    PUT  /api/v1/chats/<id>/read             mark the other party's messages read
"""

from flask import Blueprint, jsonify, request

from teamhub.blueprints import current_actor, json_body, pagination_args
from teamhub.services import conversation_service
from teamhub.utils.errors import E, api_error

chat_bp = Blueprint("chat_bp", __name__, url_prefix="/api/v1/chats")


@chat_bp.route("", methods=["GET"])
def list_chats():
    actor = current_actor()
    chats = conversation_service.list_chats(
        actor,
        kind=request.args.get("type"),
        status=request.args.get("status"),
        tab=request.args.get("tab"),
    )
    return jsonify({"items": [c.to_dict(viewer_id=actor) for c in chats], "total": len(chats)})


@chat_bp.route("", methods=["POST"])
def open_chat():
    data = json_body()
    if data is None:
        return api_error(E.VALIDATION_INVALID, "Request body must be a JSON object")
    other = data.get("participant_id") or data.get("participantId")
    if not other:
        return api_error(E.VALIDATION_REQUIRED, "participant_id is required")
    actor = current_actor()
    chat, created = conversation_service.open_direct_chat(actor, str(other))
    return jsonify(chat.to_dict(viewer_id=actor)), 201 if created else 200


@chat_bp.route("/<int:chat_id>", methods=["GET"])
def get_chat(chat_id):
    actor = current_actor()
    chat = conversation_service.get_chat_for(chat_id, actor)
    return jsonify(chat.to_dict(viewer_id=actor, include_messages=True))


@chat_bp.route("/<int:chat_id>/messages", methods=["GET"])
def list_messages(chat_id):
    messages = conversation_service.list_messages(chat_id, current_actor())
    limit, offset = pagination_args(default_limit=100, max_limit=500)
    page = messages[offset:offset + limit]
    return jsonify({"items": [m.to_dict() for m in page], "total": len(messages)})


@chat_bp.route("/<int:chat_id>/messages", methods=["POST"])
def send_message(chat_id):
    data = json_body()
    if data is None:
        return api_error(E.VALIDATION_INVALID, "Request body must be a JSON object")
    text = data.get("text")
    if not isinstance(text, str) or not text.strip():
        return api_error(E.VALIDATION_REQUIRED, "text is required")
    message = conversation_service.send_message(chat_id, current_actor(), text)
    return jsonify(message.to_dict()), 201


@chat_bp.route("/<int:chat_id>/read", methods=["PUT"])
def mark_read(chat_id):
    count = conversation_service.mark_read(chat_id, current_actor())
    return jsonify({"marked_read": count})
