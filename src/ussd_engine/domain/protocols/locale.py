"""Contrato de resolução de textos por chave semântica e locale."""

from __future__ import annotations

from abc import ABC, abstractmethod
from collections.abc import Mapping
from typing import Any


class LocaleResolver(ABC):
    """Resolve chave de mensagem + locale em texto exibível."""

    @abstractmethod
    def resolve_text(
        self,
        key: str,
        locale: str,
        params: Mapping[str, Any] | None = None,
    ) -> str:
        """Retorna o texto da chave no locale pedido.

        Implementações devem degradar (fallback de locale ou a própria
        chave) em vez de levantar exceção.
        """
