# Client for the external permission service
import logging
from typing import Optional

import httpx
from fastapi import Depends

from edo_workflow_service.app.config import settings
from edo_workflow_service.app.dependencies.http_client import get_http_client
from edo_workflow_service.app.service.interfaces.permission_client import AbstractPermissionClient

logger = logging.getLogger(__name__)


class PermissionServiceClient(AbstractPermissionClient):
    def __init__(self, http_client: httpx.AsyncClient, base_url: Optional[str] = None):
        self.http_client = http_client
        self.base_url = base_url if base_url is not None else settings.PERMISSION_SERVICE_URL

    async def may_act(self, actor_id: str, action: str, document_id: Optional[str] = None) -> bool:
        if not self.base_url:
            logger.debug(f"PERMISSION_SERVICE_URL not set. Allowing {action} for actor {actor_id}.")
            return True

        request_url = f"{self.base_url.rstrip('/')}/decisions"
        payload = {"actor_id": actor_id, "action": action, "document_id": document_id}

        try:
            response = await self.http_client.post(request_url, json=payload)
            response.raise_for_status()
            decision = response.json()
        except httpx.HTTPStatusError as e:
            logger.error(f"HTTP error calling permission service: {e.response.status_code} - {e.response.text}")
            return False
        except httpx.RequestError as e:
            logger.error(f"Request error calling permission service: {e}", exc_info=True)
            return False
        except ValueError as e:
            logger.error(f"Permission service returned a non-JSON body: {e}")
            return False

        allowed = isinstance(decision, dict) and decision.get("allowed") is True
        if not allowed:
            logger.info(f"Permission service denied {action} for actor {actor_id} (document: {document_id}).")
        return allowed


# DI provider for PermissionServiceClient
def get_permission_client(
    http_client: httpx.AsyncClient = Depends(get_http_client)
) -> AbstractPermissionClient:
    return PermissionServiceClient(http_client=http_client)
