"""
FastAPI dependencies for state validation.
"""

from fastapi import HTTPException, status

from src.services.node import INodeService, node_service


async def get_ready_node() -> INodeService:
    """
    Dependency that checks if the node is initialized.
    Returns the node service.
    """
    if not node_service.is_initialized() or not node_service.state:
        raise HTTPException(status_code=status.HTTP_503_SERVICE_UNAVAILABLE, detail="Node not initialized.")
    return node_service
