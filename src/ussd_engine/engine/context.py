"""Contexto e eventos das máquinas de sessão.

O contexto é imutável: ações retornam um novo contexto (``evolve``) e o
runtime apenas troca a referência. Nenhum contexto é compartilhado entre
sessões; sub-fluxos recebem um contexto novo com os campos de base.
"""

from __future__ import annotations

from collections.abc import Callable, Mapping
from dataclasses import dataclass, field, replace
from types import MappingProxyType
from typing import Any

from ussd_engine.domain.enums import ErrorKind, EventType

_EMPTY: Mapping[str, Any] = MappingProxyType({})


@dataclass(slots=True, frozen=True)
class MachineEvent:
    """Evento despachado contra um runtime.

    ``is_alive`` é anexado pelo runtime durante o dispatch; guards com I/O
    consultam ``session_alive()`` depois de cada espera e antes de alterar
    estado compartilhado (reservas, contadores de PIN).
    """

    type: str
    input: str | None = None
    payload: Mapping[str, Any] = field(default_factory=lambda: _EMPTY)
    is_alive: Callable[[], bool] | None = field(default=None, compare=False, repr=False)

    @classmethod
    def start(cls) -> MachineEvent:
        return cls(type=EventType.START)

    @classmethod
    def from_input(cls, text: str) -> MachineEvent:
        return cls(type=EventType.INPUT, input=text)

    def with_payload(self, values: Mapping[str, Any]) -> MachineEvent:
        """Retorna cópia com ``values`` mesclados ao payload."""
        if not values:
            return self
        return replace(self, payload=MappingProxyType({**self.payload, **values}))

    def session_alive(self) -> bool:
        """True se a sessão dona do dispatch ainda está registrada."""
        return self.is_alive is None or self.is_alive()


@dataclass(slots=True, frozen=True)
class MachineContext:
    """Dados de uma sessão visíveis aos guards e ações."""

    session_id: str
    identity_key: str
    service_code: str
    locale: str
    last_error: str | None = None
    error_kind: ErrorKind | None = None
    error_details: Mapping[str, Any] = field(default_factory=lambda: _EMPTY)
    data: Mapping[str, Any] = field(default_factory=lambda: _EMPTY)

    def get(self, key: str, default: Any = None) -> Any:
        return self.data.get(key, default)

    def evolve(self, **updates: Any) -> MachineContext:
        """Novo contexto com ``updates`` mesclados em ``data``."""
        return replace(self, data=MappingProxyType({**self.data, **updates}))

    def without(self, *keys: str) -> MachineContext:
        """Novo contexto sem as chaves informadas (ex.: descartar PIN)."""
        return replace(
            self,
            data=MappingProxyType({k: v for k, v in self.data.items() if k not in keys}),
        )

    def with_error(
        self,
        reason: str | None,
        kind: ErrorKind | None = None,
        details: Mapping[str, Any] | None = None,
    ) -> MachineContext:
        return replace(
            self,
            last_error=reason,
            error_kind=kind,
            error_details=MappingProxyType(dict(details or {})),
        )

    def clear_error(self) -> MachineContext:
        if self.last_error is None and self.error_kind is None:
            return self
        return replace(self, last_error=None, error_kind=None, error_details=_EMPTY)

    def for_child(self) -> MachineContext:
        """Contexto inicial de um sub-fluxo (somente campos de base)."""
        return MachineContext(
            session_id=self.session_id,
            identity_key=self.identity_key,
            service_code=self.service_code,
            locale=self.locale,
        )
