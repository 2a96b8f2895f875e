"""Redirect endpoint for short links."""

import ipaddress
import re
import uuid
from collections.abc import Sequence
from functools import lru_cache
from typing import Annotated

import structlog
from fastapi import APIRouter, Depends, Header, HTTPException, Query, Request, status
from fastapi.responses import JSONResponse, RedirectResponse, Response

from clicktrail.core.config import get_settings
from clicktrail.core.observability import record_redirect
from clicktrail.schemas.events import UTM_KEYS, RedirectContext
from clicktrail.services.dispatch import ClickDispatcher, get_dispatcher
from clicktrail.services.link import LinkStore, get_link_store
from clicktrail.services.redirect_gate import GateOutcome, evaluate

logger = structlog.get_logger()

router = APIRouter(tags=["redirect"])

# Query parameters consumed by the gate, never recorded
PRIVATE_QUERY_PARAMS = frozenset({"password"})

# Session cookies this service issues: uuid4().hex
SESSION_ID_PATTERN = re.compile(r"[0-9a-f]{32}")


ProxyNetwork = ipaddress.IPv4Network | ipaddress.IPv6Network


@lru_cache(maxsize=16)
def _proxy_networks(trusted_proxies: tuple[str, ...]) -> tuple[ProxyNetwork, ...]:
    return tuple(ipaddress.ip_network(proxy, strict=False) for proxy in trusted_proxies)


def _is_trusted(address: str | None, networks: tuple[ProxyNetwork, ...]) -> bool:
    if not address:
        return False
    try:
        ip = ipaddress.ip_address(address)
    except ValueError:
        return False
    return any(ip in network for network in networks)


def get_client_ip(request: Request, trusted_proxies: Sequence[str] = ()) -> str | None:
    """Extract client IP address from request.

    Forwarding headers are honoured only when the direct peer is a trusted
    proxy. X-Forwarded-For is read right to left and the first hop outside
    the trusted proxies is the client, so entries a client prepends itself
    are never picked.
    """
    peer = request.client.host if request.client else None
    networks = _proxy_networks(tuple(trusted_proxies))
    if not _is_trusted(peer, networks):
        return peer

    # X-Forwarded-For can contain multiple IPs: client, proxy1, proxy2
    forwarded_for = request.headers.get("X-Forwarded-For")
    if forwarded_for:
        hops = [hop.strip() for hop in forwarded_for.split(",") if hop.strip()]
        for hop in reversed(hops):
            if not _is_trusted(hop, networks):
                return hop
        if hops:
            return hops[0]

    # Common in nginx setups
    real_ip = request.headers.get("X-Real-IP")
    if real_ip:
        return real_ip.strip()

    return peer


def is_session_id(value: str | None) -> bool:
    return value is not None and SESSION_ID_PATTERN.fullmatch(value) is not None


def build_redirect_context(
    request: Request,
    short_code: str,
    session_id: str,
    trusted_proxies: Sequence[str] = (),
) -> RedirectContext:
    """Capture the request fields the click recorder needs."""
    query_params = {
        key: value
        for key, value in request.query_params.items()
        if key not in PRIVATE_QUERY_PARAMS
    }
    return RedirectContext(
        short_code=short_code,
        client_ip=get_client_ip(request, trusted_proxies),
        user_agent=request.headers.get("User-Agent"),
        referrer=request.headers.get("Referer"),
        utm_params={key: query_params[key] for key in UTM_KEYS if query_params.get(key)},
        query_params=query_params,
        session_id=session_id,
    )


@router.get("/{short_code}")
async def redirect_to_original(
    request: Request,
    short_code: str,
    link_store: Annotated[LinkStore, Depends(get_link_store)],
    dispatcher: Annotated[ClickDispatcher, Depends(get_dispatcher)],
    password: Annotated[str | None, Query(description="Password for protected links")] = None,
    x_link_password: Annotated[str | None, Header()] = None,
) -> Response:
    """Redirect a short code to its original URL.

    Flow:
    1. Look up the link (Redis cache first, then database)
    2. Run the gate: not found, disabled, expired, password
    3. Hand the click to the dispatcher without waiting for it
    4. Redirect to original URL
    """
    settings = get_settings()
    link = await link_store.find_link(short_code)
    decision = evaluate(link, x_link_password or password)
    record_redirect(decision.outcome.value)

    if decision.outcome == GateOutcome.NOT_FOUND:
        logger.info("Redirect failed - link not found", short_code=short_code)
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Link not found")

    if decision.outcome == GateOutcome.DISABLED:
        logger.info("Redirect blocked - link disabled", short_code=short_code, reason=decision.reason)
        return JSONResponse(
            status_code=status.HTTP_403_FORBIDDEN,
            content={"detail": "Link has been disabled", "reason": decision.reason},
        )

    if decision.outcome == GateOutcome.EXPIRED:
        logger.info("Redirect blocked - link expired", short_code=short_code)
        raise HTTPException(status_code=status.HTTP_410_GONE, detail="Link has expired")

    if decision.outcome == GateOutcome.PASSWORD_REQUIRED:
        logger.info("Redirect blocked - password required", short_code=short_code)
        if settings.password_prompt_url:
            return RedirectResponse(
                url=f"{settings.password_prompt_url}?code={short_code}",
                status_code=status.HTTP_302_FOUND,
            )
        return JSONResponse(
            status_code=status.HTTP_401_UNAUTHORIZED,
            content={"detail": "Password required", "password_required": True},
        )

    session_id = request.cookies.get(settings.session_cookie_name)
    new_session = not is_session_id(session_id)
    if new_session:
        session_id = uuid.uuid4().hex

    # Fire-and-forget: the response never waits for click recording
    dispatcher.dispatch(
        build_redirect_context(request, short_code, session_id, settings.trusted_proxies)
    )

    logger.info("Redirect", short_code=short_code, link_id=str(link.id))

    response = RedirectResponse(url=link.original_url, status_code=settings.redirect_status_code)
    if new_session:
        response.set_cookie(
            settings.session_cookie_name,
            session_id,
            max_age=settings.session_cookie_max_age,
            httponly=True,
            samesite="lax",
        )
    return response
