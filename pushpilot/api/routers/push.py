"""Push webhook router -- ``POST /push``.

Accepts GitHub push deliveries, the JSON our git hooks send, and the
legacy plain-text form (first line is a commit SHA).  By default the
pipeline runs inside the request: the caller gets the created PR or the
failure, a client disconnect cancels the work, and ``PUSH_TIMEOUT_SECONDS``
bounds it.  With ``PUSH_DISPATCH=background`` the event is acknowledged and
handed to the worker pool instead.
"""

import asyncio
import json
import logging
from collections.abc import Awaitable

from fastapi import APIRouter, Depends, Request, Response
from pydantic import ValidationError

from pushpilot.api.deps import get_state
from pushpilot.api.rate_limit import enforce_rate_limit
from pushpilot.errors import (
    InvalidPayloadError,
    NotConfiguredError,
    SignatureError,
    UpstreamTimeout,
)
from pushpilot.models import PullRequestResult, PushEvent
from pushpilot.state import ServerState
from pushpilot.webhooks import verify_github_signature

logger = logging.getLogger(__name__)

router = APIRouter(tags=["push"])

DISCONNECT_POLL_SECONDS = 0.5
# Status nginx uses for "client closed request"; nobody is left to read it.
CLIENT_CLOSED_REQUEST = 499
_ZERO_SHA = "0" * 40


def _is_json(request: Request) -> bool:
    media_type = request.headers.get("content-type", "").split(";")[0].strip().lower()
    return media_type == "application/json" or media_type.endswith("+json")


def decode_push(body: bytes, as_json: bool) -> PushEvent:
    """Turn a raw body into a :class:`PushEvent`.

    Raises:
        InvalidPayloadError: malformed JSON, missing ``ref``, a ref with an
            empty branch name, or empty text.
    """
    if as_json:
        try:
            data = json.loads(body)
        except (UnicodeDecodeError, json.JSONDecodeError) as exc:
            raise InvalidPayloadError(f"Push payload is not valid JSON: {exc}") from exc
        if not isinstance(data, dict):
            raise InvalidPayloadError("Push payload must be a JSON object")
        try:
            event = PushEvent.model_validate(data)
        except ValidationError as exc:
            raise InvalidPayloadError(
                "Push payload needs a non-empty 'ref' (e.g. refs/heads/main)"
            ) from exc
    else:
        event = PushEvent.from_text(body.decode("utf-8", errors="replace"))
        if event is None:
            raise InvalidPayloadError("Push body is empty: expected a commit SHA")

    if not event.branch_name.strip():
        raise InvalidPayloadError(f"Push ref {event.ref!r} names no branch")
    return event


async def run_bound_to_request(
    request: Request, work: Awaitable[PullRequestResult], timeout: float,
) -> PullRequestResult | None:
    """Await *work* while the client is still connected.

    Returns None if the client went away (the work is cancelled).

    Raises:
        UpstreamTimeout: *timeout* seconds elapsed first.
    """
    loop = asyncio.get_running_loop()
    deadline = loop.time() + timeout
    task = asyncio.ensure_future(work)
    try:
        while True:
            remaining = deadline - loop.time()
            if remaining <= 0:
                logger.error("Push pipeline exceeded %.0fs, cancelling", timeout)
                raise UpstreamTimeout(f"Push processing exceeded {timeout:.0f}s")
            done, _ = await asyncio.wait({task}, timeout=min(DISCONNECT_POLL_SECONDS, remaining))
            if done:
                return task.result()
            if await request.is_disconnected():
                logger.warning("Client disconnected, cancelling push pipeline")
                return None
    finally:
        if not task.done():
            task.cancel()
            await asyncio.wait({task})


@router.post("/push", dependencies=[Depends(enforce_rate_limit)])
async def receive_push(
    request: Request,
    state: ServerState = Depends(get_state),
):
    """Validate a push and turn it into a pull request."""
    body = await request.body()

    secret = state.settings.GITHUB_WEBHOOK_SECRET
    if secret:
        signature = request.headers.get("X-Hub-Signature-256", "")
        if not verify_github_signature(body, signature, secret):
            raise SignatureError()

    event_type = request.headers.get("X-GitHub-Event", "push")
    if event_type != "push":
        logger.info("Ignoring %s event", event_type)
        return {"status": "ignored", "event": event_type}

    event = decode_push(body, _is_json(request))
    if not event.is_branch:
        logger.info("Ignoring push to non-branch ref %s", event.ref)
        return {"status": "ignored", "ref": event.ref}
    if event.after == _ZERO_SHA:
        logger.info("Ignoring deletion of %s", event.branch_name)
        return {"status": "ignored", "ref": event.ref}

    config = state.config_store.get_config()
    if config is None:
        raise NotConfiguredError()

    if state.settings.PUSH_DISPATCH == "background":
        state.dispatcher.submit(
            f"{config.full_name}@{event.branch_name}",
            lambda: state.orchestrator.run(config, event),
        )
        return {"status": "accepted", "branch": event.branch_name}

    result = await run_bound_to_request(
        request,
        state.orchestrator.run(config, event),
        state.settings.PUSH_TIMEOUT_SECONDS,
    )
    if result is None:
        return Response(status_code=CLIENT_CLOSED_REQUEST)
    return {"status": "created", **result.as_dict()}
