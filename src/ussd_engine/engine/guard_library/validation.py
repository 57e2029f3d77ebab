"""Validação de input do usuário e guards de validação.

Validadores puros retornam ``ValidationResult``; os guards embrulham os
validadores e expõem motivo de negação específico do campo.

Regras:
- PIN: exatamente N dígitos; PINs fracos (repetidos/sequenciais) recusados
  quando ``reject_weak=True`` (cadastro)
- Valor: até 2 casas decimais, > 0, entre 0.01 e 1.000.000
- Telefone: 10 a 15 dígitos após normalização
- Texto livre: 1 a 100 caracteres alfanuméricos/espaço
"""

from __future__ import annotations

import re
from dataclasses import dataclass
from decimal import Decimal, InvalidOperation
from typing import Any

from ussd_engine.domain.enums import DenyReason, GuardFamily
from ussd_engine.engine.context import MachineContext, MachineEvent
from ussd_engine.engine.guards import Guard, GuardDecision, guard

MAX_TEXT_LENGTH = 100
AMOUNT_MIN = Decimal("0.01")
AMOUNT_MAX = Decimal("1000000")
PHONE_MIN_DIGITS = 10
PHONE_MAX_DIGITS = 15
EMAIL_SKIP_INPUT = "00"

WEAK_PINS: frozenset[str] = frozenset(
    {str(d) * 5 for d in range(10)} | {"12345", "54321"}
)

_UNSAFE_CHARS = re.compile(r"[<>\"'&]")
_WHITESPACE = re.compile(r"\s+")
_AMOUNT_PATTERN = re.compile(r"^\d+(\.\d{1,2})?$")
_PHONE_PATTERN = re.compile(r"[1-9]\d{8,13}")
_TEXT_PATTERN = re.compile(r"^[A-Za-z0-9 ]+$")
_EMAIL_PATTERN = re.compile(r"^[^@\s]+@[^@\s]+\.[A-Za-z]{2,}$")
_CLAIM_ID_PATTERN = re.compile(r"^[A-Za-z0-9-]{3,32}$")


@dataclass(slots=True, frozen=True)
class ValidationResult:
    is_valid: bool
    value: Any = None
    reason: DenyReason | None = None


def sanitize_input(raw: str | None, max_length: int = MAX_TEXT_LENGTH) -> str:
    """Remove caracteres de injeção, normaliza espaços e trunca."""
    if not raw:
        return ""
    cleaned = _UNSAFE_CHARS.sub("", raw.strip())
    cleaned = _WHITESPACE.sub(" ", cleaned)
    return cleaned[:max_length]


def validate_pin(raw: str | None, length: int = 5, reject_weak: bool = False) -> ValidationResult:
    value = sanitize_input(raw)
    if len(value) != length or not value.isdigit():
        return ValidationResult(False, reason=DenyReason.INVALID_PIN_FORMAT)
    if reject_weak and value in WEAK_PINS:
        return ValidationResult(False, reason=DenyReason.WEAK_PIN)
    return ValidationResult(True, value)


def validate_amount(
    raw: str | None,
    minimum: Decimal = AMOUNT_MIN,
    maximum: Decimal = AMOUNT_MAX,
) -> ValidationResult:
    value = sanitize_input(raw)
    if not _AMOUNT_PATTERN.match(value):
        return ValidationResult(False, reason=DenyReason.INVALID_AMOUNT)
    try:
        amount = Decimal(value)
    except InvalidOperation:
        return ValidationResult(False, reason=DenyReason.INVALID_AMOUNT)
    if amount <= 0 or amount < minimum or amount > maximum:
        return ValidationResult(False, reason=DenyReason.INVALID_AMOUNT)
    return ValidationResult(True, amount)


def normalize_phone(raw: str | None) -> str:
    digits = re.sub(r"\D", "", raw or "")
    return digits[1:] if digits.startswith("0") else digits


def validate_phone(raw: str | None) -> ValidationResult:
    value = sanitize_input(raw)
    if not PHONE_MIN_DIGITS <= len(value) <= PHONE_MAX_DIGITS:
        return ValidationResult(False, reason=DenyReason.INVALID_PHONE)
    digits = normalize_phone(value)
    if not _PHONE_PATTERN.fullmatch(digits):
        return ValidationResult(False, reason=DenyReason.INVALID_PHONE)
    return ValidationResult(True, digits)


def validate_text(raw: str | None, max_length: int = MAX_TEXT_LENGTH) -> ValidationResult:
    value = sanitize_input(raw, max_length=max_length + 1)
    if not value or len(value) > max_length or not _TEXT_PATTERN.match(value):
        return ValidationResult(False, reason=DenyReason.INVALID_TEXT)
    return ValidationResult(True, value)


def validate_email(raw: str | None) -> ValidationResult:
    value = sanitize_input(raw)
    if not _EMAIL_PATTERN.match(value):
        return ValidationResult(False, reason=DenyReason.INVALID_EMAIL)
    return ValidationResult(True, value.lower())


def validate_claim_id(raw: str | None) -> ValidationResult:
    value = sanitize_input(raw)
    if not _CLAIM_ID_PATTERN.match(value):
        return ValidationResult(False, reason=DenyReason.INVALID_INPUT)
    return ValidationResult(True, value)


def _as_guard(name: str, validator, **kwargs: Any) -> Guard:
    def _check(context: MachineContext, event: MachineEvent) -> GuardDecision:
        result = validator(event.input, **kwargs)
        if result.is_valid:
            return GuardDecision.allow()
        return GuardDecision.deny(result.reason, GuardFamily.VALIDATION)

    return guard(name, GuardFamily.VALIDATION, _check)


def pin_format(length: int = 5, reject_weak: bool = False) -> Guard:
    return _as_guard("pin_format", validate_pin, length=length, reject_weak=reject_weak)


def valid_amount(minimum: Decimal = AMOUNT_MIN, maximum: Decimal = AMOUNT_MAX) -> Guard:
    return _as_guard("valid_amount", validate_amount, minimum=minimum, maximum=maximum)


def valid_phone() -> Guard:
    return _as_guard("valid_phone", validate_phone)


def valid_text(max_length: int = MAX_TEXT_LENGTH) -> Guard:
    return _as_guard("valid_text", validate_text, max_length=max_length)


def valid_email() -> Guard:
    return _as_guard("valid_email", validate_email)


def valid_claim_id() -> Guard:
    return _as_guard("valid_claim_id", validate_claim_id)


def matches_context(key: str, reason: str = DenyReason.PIN_MISMATCH) -> Guard:
    """Input deve ser igual a ``context.data[key]`` (ex.: confirmação de PIN)."""

    def _check(context: MachineContext, event: MachineEvent) -> bool:
        expected = context.get(key)
        return expected is not None and sanitize_input(event.input) == expected

    return guard(f"matches_context({key})", GuardFamily.VALIDATION, _check, reason=reason)
