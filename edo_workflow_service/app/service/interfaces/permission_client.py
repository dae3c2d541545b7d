from abc import ABC, abstractmethod
from typing import Optional


class AbstractPermissionClient(ABC):
    @abstractmethod
    async def may_act(
        self,
        actor_id: str,
        action: str,
        document_id: Optional[str] = None,
    ) -> bool:
        """
        Asks the permission service whether an actor may perform an action.

        Args:
            actor_id: The already-authenticated actor identity.
            action: Workflow action name, e.g. "APPROVE" or "CREATE_TEMPLATE".
            document_id: The target document, when the action has one.

        Returns:
            True when the action is allowed.
        """
        pass
