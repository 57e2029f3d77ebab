"""Normalização do input USSD em eventos de máquina.

Gateways USSD costumam enviar o texto acumulado da sessão ("1*2*3"); apenas
o último segmento é o input corrente. Regras:
- texto vazio                  -> START (abertura/reexibição)
- "*", "**..." ou aliases de saída -> "*" (sair)
- aliases de voltar            -> "0" (voltar)
- demais                       -> último segmento após "*"
"""

from __future__ import annotations

from dataclasses import dataclass
from enum import StrEnum

from ussd_engine.engine.context import MachineEvent
from ussd_engine.engine.guard_library.navigation import BACK_INPUT, EXIT_INPUT
from ussd_engine.engine.guard_library.validation import sanitize_input

EXIT_ALIASES: frozenset[str] = frozenset({"*", "exit", "cancel"})
BACK_ALIASES: frozenset[str] = frozenset({"0", "back"})


class InputKind(StrEnum):
    START = "start"
    EXIT = "exit"
    BACK = "back"
    TEXT = "text"


@dataclass(slots=True, frozen=True)
class ParsedInput:
    kind: InputKind
    value: str = ""

    def to_event(self) -> MachineEvent:
        if self.kind is InputKind.START:
            return MachineEvent.start()
        return MachineEvent.from_input(self.value)


def parse_ussd_input(raw: str | None) -> ParsedInput:
    """Converte o texto bruto do gateway em ``ParsedInput``."""
    text = (raw or "").strip().rstrip("#")
    if not text:
        return ParsedInput(InputKind.START)

    if text == EXIT_INPUT or "**" in text:
        return ParsedInput(InputKind.EXIT, EXIT_INPUT)

    segment = text.rsplit("*", 1)[-1] if "*" in text else text
    segment = sanitize_input(segment)
    lowered = segment.lower()

    if not segment:
        # Texto terminando em "*" ("1*"): trata como saída
        return ParsedInput(InputKind.EXIT, EXIT_INPUT)
    if lowered in EXIT_ALIASES:
        return ParsedInput(InputKind.EXIT, EXIT_INPUT)
    if lowered in BACK_ALIASES:
        return ParsedInput(InputKind.BACK, BACK_INPUT)
    return ParsedInput(InputKind.TEXT, segment)
