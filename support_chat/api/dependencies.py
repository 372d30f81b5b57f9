"""Service wiring shared by the routes."""

from dataclasses import dataclass

import redis
from fastapi import Request

from support_chat.api.rate_limiter import RateLimiter
from support_chat.config.settings import Settings
from support_chat.core.turn_orchestrator import TurnOrchestrator


@dataclass
class ChatServices:
    settings: Settings
    orchestrator: TurnOrchestrator
    rate_limiter: RateLimiter
    redis_client: redis.Redis


def get_services(request: Request) -> ChatServices:
    return request.app.state.services


def get_client_ip(request: Request) -> str:
    forwarded = request.headers.get("x-forwarded-for")
    if forwarded:
        first = forwarded.split(",")[0].strip()
        if first:
            return first
    real_ip = request.headers.get("x-real-ip")
    if real_ip:
        return real_ip
    if request.client is not None:
        return request.client.host
    return "unknown"
