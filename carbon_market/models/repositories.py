"""Repository interfaces for datastore-agnostic model access."""

from abc import ABC, abstractmethod
import logging
from typing import List, Optional

from .activity import ActivityRecordModel
from .credits import CarbonCreditModel
from .exceptions import ModelNotFoundError, PersistenceError, VersionConflictError
from .positions import LendingPositionModel


logger = logging.getLogger(__name__)


class BaseRepository(ABC):
    """Common contract for create and lookup operations."""

    @abstractmethod
    def create(self, model):
        """Persist a new model and assign its sequential id."""

    @abstractmethod
    def get_by_id(self, model_id: int):
        """Return model by identifier."""


class LendingPositionRepository(BaseRepository):
    """Lending position data access abstraction."""

    @abstractmethod
    def create(self, model: LendingPositionModel) -> LendingPositionModel:
        """Persist a new lending position."""

    @abstractmethod
    def get_by_id(self, model_id: int) -> LendingPositionModel:
        """Fetch a lending position by identifier.

        Raises:
            ModelNotFoundError: If position does not exist.
        """

    @abstractmethod
    def update(self, model: LendingPositionModel) -> LendingPositionModel:
        """Write a mutated position and bump its version.

        `model.version` must be the version that was read; the write is rejected
        when the stored document has moved on since.

        Raises:
            ModelNotFoundError: If position does not exist.
            VersionConflictError: If version does not match persisted document.
            PersistenceError: If the datastore write fails.
        """

    @abstractmethod
    def list(
        self,
        user_address: Optional[str] = None,
        status: Optional[str] = None,
        limit: Optional[int] = 20,
        offset: int = 0,
    ) -> List[LendingPositionModel]:
        """Return positions newest first, optionally filtered by owner and status."""

    @abstractmethod
    def count(self, status: Optional[str] = None) -> int:
        """Count positions, optionally restricted to one status."""


class CarbonCreditRepository(BaseRepository):
    """Carbon credit batch data access abstraction."""

    @abstractmethod
    def create(self, model: CarbonCreditModel) -> CarbonCreditModel:
        """Persist a newly minted credit batch."""

    @abstractmethod
    def get_by_id(self, model_id: int) -> CarbonCreditModel:
        """Fetch a credit batch by identifier.

        Raises:
            ModelNotFoundError: If credit does not exist.
        """


class ActivityRepository(BaseRepository):
    """Append-only activity log abstraction."""

    @abstractmethod
    def create(self, model: ActivityRecordModel) -> ActivityRecordModel:
        """Append an activity record."""

    @abstractmethod
    def get_by_id(self, model_id: int) -> ActivityRecordModel:
        """Fetch an activity record by identifier."""

    @abstractmethod
    def list_by_user(self, user_address: str, limit: int = 50, offset: int = 0) -> List[ActivityRecordModel]:
        """Return a user's activity newest first."""


__all__ = [
    "ModelNotFoundError",
    "PersistenceError",
    "VersionConflictError",
    "LendingPositionRepository",
    "CarbonCreditRepository",
    "ActivityRepository",
]
