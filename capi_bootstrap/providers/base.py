"""Common base of every provider."""

from abc import ABC

from pydantic import BaseModel, ConfigDict


class Provider(BaseModel, ABC):
    """A provider is a pydantic model so its fields persist with the cluster state.

    Subclasses give ``name`` a default; it is the registry key and the
    discriminator stored in the state record.
    """
    model_config = ConfigDict(extra="ignore", validate_assignment=False)

    name: str

    @classmethod
    def provider_name(cls) -> str:
        return cls.model_fields["name"].default
