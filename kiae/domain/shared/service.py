"""Base class for domain services wired by the DI container."""

from dataclasses import dataclass
from typing import dataclass_transform


@dataclass_transform(kw_only_default=True)
class _ServiceMeta(type):
    """Turns every Service subclass into a keyword-only dataclass."""

    def __new__(mcs, name: str, bases: tuple, namespace: dict):
        cls = super().__new__(mcs, name, bases, namespace)
        if not any(isinstance(base, mcs) for base in bases):
            return cls
        return dataclass(cls, kw_only=True)


class Service(metaclass=_ServiceMeta):
    """Domain service: collaborators are declared as annotated fields.

    Example:
        class CredentialResolver(Service):
            indexer: WorkloadIndexer
            identity: IdentityState
    """
