"""Enums de domínio: famílias de guard, tipos de erro e motivos de negação."""

from __future__ import annotations

from enum import StrEnum


class GuardFamily(StrEnum):
    """Família de um guard (determina ordem e semântica de falha)."""

    NAVIGATION = "navigation"
    VALIDATION = "validation"
    DOMAIN = "domain"
    SYSTEM = "system"
    COMPOSITE = "composite"


class ErrorKind(StrEnum):
    """Taxonomia de erros expostos ao chamador."""

    INPUT_REJECTED = "input_rejected"
    LOCKED = "locked"
    RATE_LIMITED = "rate_limited"
    SERVICE_UNAVAILABLE = "service_unavailable"
    EXTERNAL_UNAVAILABLE = "external_unavailable"
    SESSION_EXPIRED = "session_expired"
    CONFIGURATION_ERROR = "configuration_error"


class DenyReason(StrEnum):
    """Motivos canônicos de negação (chaves estáveis para o locale resolver)."""

    INVALID_SELECTION = "invalid selection"
    INVALID_INPUT = "invalid input"
    INVALID_PIN = "invalid PIN"
    INVALID_PIN_FORMAT = "invalid PIN format"
    WEAK_PIN = "weak PIN"
    PIN_MISMATCH = "PIN mismatch"
    INVALID_AMOUNT = "invalid amount"
    INVALID_PHONE = "invalid phone number"
    INVALID_TEXT = "invalid text"
    INVALID_EMAIL = "invalid email"
    LOCKED = "locked"
    RATE_LIMITED = "rate limited"
    SERVICE_UNAVAILABLE = "service unavailable"
    SESSION_EXPIRED = "session expired"
    EXTERNAL_UNAVAILABLE = "external unavailable"
    DAILY_LIMIT_EXCEEDED = "daily limit exceeded"
    DAILY_COUNT_EXCEEDED = "daily transaction count exceeded"
    INSUFFICIENT_BALANCE = "insufficient balance"
    IDENTITY_NOT_VERIFIED = "identity not verified"
    NOT_AUTHENTICATED = "not authenticated"
    CLAIM_NOT_FOUND = "claim not found"
    REGISTRATION_REJECTED = "registration rejected"
    CONDITION_NOT_MET = "condition not met"


class EventType(StrEnum):
    """Tipos de evento genéricos; saídas de sub-fluxo usam strings próprias."""

    START = "START"
    INPUT = "INPUT"
