"""
FastAPI routes for the wellness assistant.
What it provides:
- Chat turn endpoint (rate limited)
- Daily task generation endpoint (rate limited, smaller budget)
- Chat and account deletion
- Today's tasks, task completion toggle, mood history
- Recent chats with a preview, and one chat's full history

And, the main purpose:
Expose the assistant over HTTP.
"""

from uuid import UUID

from fastapi import APIRouter, BackgroundTasks, Query, Request, Response

from mindease.api.deps import admit, current_user, get_services
from mindease.api.types import ChatRequest, DeleteChatRequest, TaskGenerationRequest, TaskUpdateRequest
from mindease.api.validation import parse_body
from mindease.assistant.tasks import today_bounds
from mindease.core.errors import AppError, ForbiddenError, NotFoundError
from mindease.core.logging import get_logger
from mindease.db.repo import (
    delete_chat,
    get_chat,
    get_task,
    list_chat_messages,
    list_recent_chats,
    list_recent_moods,
    list_tasks_between,
    purge_user_data,
    update_task,
)

log = get_logger("api.routes")

RECENT_CHATS_LIMIT = 20
CHAT_PREVIEW_LEN = 50

router = APIRouter()


@router.post("/chat")
async def api_chat(request: Request, response: Response, background_tasks: BackgroundTasks):
    svc = get_services(request)
    decision = await admit(request, svc.chat_policy)
    user_id = await current_user(request)
    req = parse_body(await request.body(), ChatRequest)

    reply = await svc.orchestrator.handle(user_id, req, defer=background_tasks.add_task)

    response.headers.update(decision.headers())
    return {"text": reply.text, "success": True, "chatId": reply.chat_id}


@router.post("/tasks/generate")
async def api_generate_tasks(request: Request, response: Response):
    svc = get_services(request)
    decision = await admit(request, svc.tasks_policy)
    user_id = await current_user(request)
    req = parse_body(await request.body(), TaskGenerationRequest)

    tasks = await svc.task_generator.generate(user_id, req.language)

    response.headers.update(decision.headers())
    return {"success": True, "tasks": [t.to_dict() for t in tasks]}


@router.get("/tasks/today")
async def api_today_tasks(request: Request):
    svc = get_services(request)
    user_id = await current_user(request)
    start, end = today_bounds(svc.settings.TIMEZONE)
    async with svc.session_factory() as db:
        tasks = await list_tasks_between(db, user_id, start, end)
    return {"success": True, "tasks": [t.to_dict() for t in tasks]}


@router.post("/tasks/update")
async def api_update_task(request: Request):
    svc = get_services(request)
    user_id = await current_user(request)
    req = parse_body(await request.body(), TaskUpdateRequest)

    async with svc.session_factory() as db:
        task = await get_task(db, str(req.taskId))
        if not task:
            raise NotFoundError("Task not found", code="TASK_NOT_FOUND")
        if task.user_id != user_id:
            raise ForbiddenError()
        task.completed = req.completed
        task = await update_task(db, task)
    return {"success": True, "task": task.to_dict()}


@router.get("/mood")
async def api_mood_history(request: Request, limit: int = Query(30, ge=1, le=100)):
    svc = get_services(request)
    user_id = await current_user(request)
    async with svc.session_factory() as db:
        entries = await list_recent_moods(db, user_id, limit)
    return {
        "success": True,
        "entries": [
            {"id": e.id, "score": e.score, "note": e.note, "createdAt": e.created_at.isoformat()}
            for e in entries
        ],
    }


@router.get("/chats")
async def api_recent_chats(request: Request, limit: int = Query(RECENT_CHATS_LIMIT, ge=1, le=100)):
    svc = get_services(request)
    user_id = await current_user(request)
    async with svc.session_factory() as db:
        chats = await list_recent_chats(db, user_id, limit)
    return {
        "success": True,
        "chats": [
            {
                "id": chat.id,
                "createdAt": chat.created_at.isoformat(),
                "preview": first[:CHAT_PREVIEW_LEN] if first else None,
            }
            for chat, first in chats
        ],
    }


@router.get("/chats/{chat_id}/messages")
async def api_chat_messages(request: Request, chat_id: UUID):
    svc = get_services(request)
    user_id = await current_user(request)
    async with svc.session_factory() as db:
        chat = await get_chat(db, str(chat_id))
        if not chat:
            raise NotFoundError("Chat not found", code="CHAT_NOT_FOUND")
        if chat.user_id != user_id:
            raise ForbiddenError()
        messages = await list_chat_messages(db, chat.id)
    # same turn shape /chat accepts, so a client can resume the conversation
    return {
        "success": True,
        "chatId": chat.id,
        "messages": [
            {"id": i, "text": m.content, "isUser": m.role == "user", "createdAt": m.created_at.isoformat()}
            for i, m in enumerate(messages)
        ],
    }


@router.post("/chat/delete")
async def api_delete_chat(request: Request):
    svc = get_services(request)
    user_id = await current_user(request)
    req = parse_body(await request.body(), DeleteChatRequest)

    async with svc.session_factory() as db:
        chat = await get_chat(db, str(req.chatId))
        if not chat:
            raise NotFoundError("Chat not found", code="CHAT_NOT_FOUND")
        if chat.user_id != user_id:
            raise ForbiddenError()
        try:
            await delete_chat(db, chat)
        except Exception:
            log.exception(f"could not delete chat {chat.id}")
            raise AppError("Failed to delete chat", code="CHAT_DELETE_FAILED")
    return {"success": True, "message": "Chat deleted successfully"}


@router.post("/account/delete")
async def api_delete_account(request: Request):
    svc = get_services(request)
    user_id = await current_user(request)

    try:
        await svc.identity.delete_user(user_id)
        async with svc.session_factory() as db:
            await purge_user_data(db, user_id)
    except AppError:
        raise
    except Exception:
        log.exception(f"could not delete account {user_id}")
        raise AppError("Failed to delete account", code="ACCOUNT_DELETE_FAILED")
    return {"success": True, "message": "Account deleted successfully"}
