"""
Profile store interface.

The relay only ever reads connection profiles; creating, editing and
grouping them belongs to an external collaborator.
"""

from abc import abstractmethod
from typing import Optional

from ..domain.descriptor import StoredProfile
from .lifecycle import IComponent


class IProfileStore(IComponent):
    """Read-only lookup of stored connection profiles."""

    @abstractmethod
    async def get_by_id(self, profile_id: str) -> Optional[StoredProfile]:
        """
        Look up a profile by identifier.

        Args:
            profile_id: Stored profile identifier

        Returns:
            The profile, or None if no profile has that identifier
        """
        pass
