import json
import logging

from fastapi import HTTPException, status

from backend.app import schemas
from shared.config import settings

logger = logging.getLogger(__name__)


async def ingest_actions(
    request: schemas.ActionsIngestRequest,
    nats_client
) -> schemas.ActionsIngestResponse:
    if len(request.actions) > settings.MAX_ACTIONS_PER_REQUEST:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail=(
                f"Too many actions: {len(request.actions)}. "
                f"Maximum allowed is {settings.MAX_ACTIONS_PER_REQUEST} actions per request."
            )
        )

    if not nats_client or not getattr(nats_client, "is_connected", False):
        raise HTTPException(
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
            detail="NATS unavailable"
        )

    actions_data = [action.model_dump(mode="json") for action in request.actions]
    message = {"actions": actions_data}

    try:
        await nats_client.publish(
            settings.ACTIONS_SUBJECT,
            json.dumps(message, default=str).encode()
        )
    except Exception as exc:
        logger.error(f"Publishing {len(actions_data)} actions failed: {exc}")
        raise HTTPException(
            status_code=status.HTTP_502_BAD_GATEWAY,
            detail=f"NATS publish failed: {exc}"
        )

    return schemas.ActionsIngestResponse(
        status="accepted",
        message="Actions queued for recording",
        actions_count=len(request.actions)
    )
