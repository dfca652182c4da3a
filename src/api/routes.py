"""
API Routes definition.
Local application surface of the node: sending, inbox, notices and clock.
"""

import logging
from typing import Any, Dict, List, Optional

from fastapi import APIRouter, Depends, status
from pydantic import BaseModel

from src.api.dependencies import get_ready_node
from src.core.message import MessageEnvelope
from src.services.node import INodeService, node_service

logger = logging.getLogger(__name__)

router = APIRouter()


class SendMessageRequest(BaseModel):
    """Payload for sending a message. A target makes it private."""

    text: str
    target: Optional[str] = None


# === PUBLIC ROUTES ===


@router.get("/health")
async def health_check() -> Dict[str, Any]:
    """Returns the node status"""
    is_ready = node_service.is_initialized()
    node_id = node_service.state.node_id if is_ready and node_service.state else None

    return {"status": "online", "initialized": is_ready, "node_id": node_id}


# === Node routes ===


@router.post("/messages", status_code=status.HTTP_202_ACCEPTED)
async def send_message(payload: SendMessageRequest, node: INodeService = Depends(get_ready_node)) -> Dict[str, str]:
    """
    Queues a message for the overlay.
    The dispatcher assigns its id and clock when it gets to it.
    """
    if payload.target:
        node.send_private(payload.target, payload.text)
        return {"status": "queued", "kind": "private"}

    node.send_public(payload.text)
    return {"status": "queued", "kind": "public"}


@router.get("/messages", response_model=List[MessageEnvelope])
async def get_messages(
    limit: int = 50, offset: int = 0, node: INodeService = Depends(get_ready_node)
) -> List[MessageEnvelope]:
    """
    Retrieves the messages delivered to this node
    """
    return node.get_messages(limit=limit, offset=offset)


@router.get("/notices", response_model=List[str])
async def get_notices(node: INodeService = Depends(get_ready_node)) -> List[str]:
    """Retrieves operational notices (e.g. failed relays)"""
    return node.get_notices()


@router.get("/clock", response_model=Dict[str, int])
async def get_clock(node: INodeService = Depends(get_ready_node)) -> Dict[str, int]:
    """Returns the current vector clock of the node"""
    return await node.get_clock()
