"""
Request helpers shared by the API and page blueprints.
"""
import asyncio
from typing import Any, Dict

from flask import g, request

from services.audit_service import RequestContext, client_ip


def run_async(coro):
    """Run async function in sync context."""
    loop = asyncio.new_event_loop()
    asyncio.set_event_loop(loop)
    try:
        return loop.run_until_complete(coro)
    finally:
        loop.close()


def request_ip() -> str:
    return client_ip(request.headers, request.remote_addr)


def request_context() -> RequestContext:
    """Audit context for the signed-in user of the current request."""
    user = g.get("user")
    return RequestContext(
        actor_id=user.id if user else None,
        ip_address=request_ip(),
        user_agent=request.headers.get("User-Agent")
    )


def json_body() -> Dict[str, Any]:
    """JSON body, falling back to form fields for plain form posts."""
    data = request.get_json(silent=True)
    if isinstance(data, dict):
        return data
    return request.form.to_dict()
