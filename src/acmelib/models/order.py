"""Order entity and Identifier value object."""

from __future__ import annotations

from dataclasses import dataclass
from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from datetime import datetime

    from acmelib.core.types import IdentifierType, OrderStatus


@dataclass(frozen=True)
class Identifier:
    """ACME identifier value object."""

    type: IdentifierType
    value: str


@dataclass(frozen=True)
class Order:
    url: str
    status: OrderStatus
    identifiers: tuple[Identifier, ...]
    finalize_url: str
    authorizations: tuple[str, ...] = ()
    certificate_url: str | None = None
    error: dict | None = None
    expires: datetime | None = None

    @property
    def domains(self) -> list[str]:
        return [i.value for i in self.identifiers]
