"""
Per-process service container and the request-scoped helpers routes share:
rate admission and caller identity.
"""

from dataclasses import dataclass

from fastapi import Request
from sqlalchemy.ext.asyncio import AsyncEngine, async_sessionmaker

from mindease.assistant.conversation import ConversationOrchestrator
from mindease.assistant.mood import MoodScorer
from mindease.assistant.tasks import TaskGenerator
from mindease.core.config import Settings
from mindease.core.errors import AuthError, ThrottleError
from mindease.core.rate_limit import RateDecision, RateGovernor, RatePolicy, client_identifier


@dataclass
class Services:
    settings: Settings
    engine: AsyncEngine
    session_factory: async_sessionmaker
    identity: object
    governor: RateGovernor
    chat_policy: RatePolicy
    tasks_policy: RatePolicy
    mood_scorer: MoodScorer
    orchestrator: ConversationOrchestrator
    task_generator: TaskGenerator


def get_services(request: Request) -> Services:
    return request.app.state.services


async def admit(request: Request, policy: RatePolicy) -> RateDecision:
    governor = get_services(request).governor
    identifier = client_identifier(request.headers, request.client.host if request.client else None)
    decision = await governor.admit(identifier, policy)
    if not decision.allowed:
        raise ThrottleError(decision.retry_after(governor.now_ms()), headers=decision.headers())
    return decision


async def current_user(request: Request) -> str:
    user_id = await get_services(request).identity.resolve(request.headers)
    if not user_id:
        raise AuthError()
    return user_id
