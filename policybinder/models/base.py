"""Base model for the custom resources served under policies.kubewarden.io."""

from typing import Any, Dict

from pydantic import BaseModel, ConfigDict, Field, ValidationError

from policybinder.constants import API_VERSION
from policybinder.errors import ConfigurationError
from policybinder.models.meta import ObjectKey, ObjectMeta


def format_validation_error(error: ValidationError) -> str:
    """Flatten a pydantic error into a single admission-friendly line."""
    parts = []
    for err in error.errors():
        location = ".".join(str(p) for p in err["loc"])
        parts.append(f"{location}: {err['msg']}" if location else err["msg"])
    return "; ".join(parts)


class Resource(BaseModel):
    """A stored custom resource."""

    model_config = ConfigDict(populate_by_name=True, extra="allow")

    api_version: str = Field(API_VERSION, alias="apiVersion")
    kind: str
    metadata: ObjectMeta = Field(default_factory=ObjectMeta)

    @property
    def key(self) -> ObjectKey:
        return ObjectKey(self.metadata.name, self.metadata.namespace)

    @classmethod
    def from_object(cls, obj: Dict[str, Any]):
        """Parse a wire-format dictionary, raising ConfigurationError."""
        try:
            return cls.model_validate(obj)
        except ValidationError as e:
            raise ConfigurationError(format_validation_error(e)) from e

    def to_object(self) -> Dict[str, Any]:
        return self.model_dump(by_alias=True, exclude_none=True, mode="json")
