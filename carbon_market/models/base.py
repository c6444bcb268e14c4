"""Shared base models and common type aliases."""

from datetime import datetime, timezone
import logging
import math
from typing import Any, Dict, Optional

from pydantic import BaseModel, ConfigDict, Field

from .exceptions import ModelValidationError


logger = logging.getLogger(__name__)

Amount = float


def utc_now() -> datetime:
    """Return current UTC timestamp."""
    return datetime.now(timezone.utc)


def finite_or_none(value: Optional[float]) -> Optional[float]:
    """Render infinite or NaN floats as `None` so they survive JSON encoding."""
    if value is None:
        return None
    if math.isinf(value) or math.isnan(value):
        return None
    return value


class BaseDocumentModel(BaseModel):
    """Base document schema for datastore-backed domain models."""

    model_config = ConfigDict(
        str_strip_whitespace=True,
        use_enum_values=True,
    )

    id: Optional[int] = Field(default=None, ge=1, description="Sequential document ID.")
    created_at: datetime = Field(default_factory=utc_now)
    updated_at: datetime = Field(default_factory=utc_now)
    version: int = Field(default=1, ge=1)

    @property
    def document_id(self) -> str:
        """Return the datastore key for this model."""
        if self.id is None:
            raise ModelValidationError("{0} has no id assigned".format(self.__class__.__name__))
        return str(self.id)

    def to_document(self) -> Dict[str, Any]:
        """Serialize model into a datastore-ready document dictionary.

        Raises:
            ModelValidationError: If serialization fails.
        """
        try:
            return self.model_dump(exclude_none=True)
        except Exception as exc:
            logger.exception("Failed to serialize %s with id=%s", self.__class__.__name__, self.id)
            raise ModelValidationError(str(exc)) from exc

    @classmethod
    def from_document(cls, data: Dict[str, Any], doc_id: Optional[str] = None) -> "BaseDocumentModel":
        """Create model instance from datastore document data.

        Args:
            data: Stored document payload.
            doc_id: Optional datastore key, used when the payload carries no id.

        Raises:
            ModelValidationError: If payload parsing fails.
        """
        try:
            payload = dict(data)
            if doc_id is not None and payload.get("id") is None:
                payload["id"] = int(doc_id)
            return cls(**payload)
        except Exception as exc:
            logger.exception("Failed to parse stored payload for %s doc_id=%s", cls.__name__, doc_id)
            raise ModelValidationError(str(exc)) from exc
