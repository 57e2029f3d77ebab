"""Catálogo de textos USSD por locale.

Chaves semânticas ("login.enter_pin", "error.locked") são resolvidas no
locale da sessão; chave ausente cai no locale padrão e, por último, na
própria chave. Placeholders ausentes viram string vazia.
"""

from __future__ import annotations

import logging
from collections.abc import Mapping
from typing import Any

from ussd_engine.domain.protocols.locale import LocaleResolver
from ussd_engine.observability.logging import get_logger

logger: logging.Logger = get_logger(__name__)

ENGLISH: dict[str, str] = {
    # Menu principal
    "main.menu": (
        "Welcome\n1. Know more\n2. My account\n3. Send money\n*. Exit"
    ),
    "main.account_created": (
        "Account created. Customer ID: {customer_id}\n1. Main menu\n*. Exit"
    ),
    "main.transfer_complete": "Transfer of {amount} to {recipient} accepted. Thank you.",
    "main.goodbye": "Thank you for using our service.",
    # Saber mais
    "know_more.menu": (
        "Know more\n1. About us\n2. Products\n3. Fees\n4. Check a claim\n0. Back"
    ),
    "know_more.sms_sent": "Details about {topic} were sent by SMS.\n1. Main menu\n0. Back",
    "know_more.claim_entry": "Enter your claim number:\n0. Back",
    "know_more.claim_status": "Claim {claim_id}: {status}\n1. Main menu\n0. Back",
    # Conta
    "account_menu.menu": "My account\n1. Login\n2. Create account\n0. Back",
    "login.enter_pin": "Enter your {pin_length}-digit PIN:\n0. Back",
    "register.enter_name": "Enter your full name:\n0. Back",
    "register.enter_email": "Enter your email (00 to skip):\n0. Back",
    "register.enter_pin": "Choose a 5-digit PIN:\n0. Back",
    "register.confirm_pin": "Confirm your PIN:\n0. Back",
    # Transferência
    "transfer.enter_amount": "Enter amount:\n0. Back",
    "transfer.enter_recipient": "Enter recipient phone number:\n0. Back",
    "transfer.confirm": "Send {amount} to {recipient}?\n1. Confirm\n2. Cancel\n0. Back",
    # Erros (chave = "error." + motivo de negação)
    "error.invalid selection": "Invalid choice.",
    "error.invalid input": "Invalid input.",
    "error.invalid PIN": "Wrong PIN. {attempts_remaining} attempt(s) left.",
    "error.invalid PIN format": "Invalid PIN format.",
    "error.weak PIN": "PIN too easy to guess.",
    "error.PIN mismatch": "PINs do not match.",
    "error.invalid amount": "Invalid amount.",
    "error.invalid phone number": "Invalid phone number.",
    "error.invalid text": "Use letters and numbers only.",
    "error.invalid email": "Invalid email.",
    "error.locked": "Account locked. Try again later.",
    "error.rate limited": "Too many requests. Please wait and try again.",
    "error.service unavailable": "Service unavailable. Please try again later.",
    "error.external unavailable": "System busy. Please try again.",
    "error.session expired": "Your session expired. Starting again.",
    "error.daily limit exceeded": "Daily limit exceeded.",
    "error.daily transaction count exceeded": "Daily transaction count exceeded.",
    "error.insufficient balance": "Insufficient balance.",
    "error.identity not verified": "Identity not verified.",
    "error.not authenticated": "Please log in first.",
    "error.claim not found": "Claim not found.",
    "error.registration rejected": "Registration not possible.",
    "error.condition not met": "Request not allowed.",
}

# Cobertura parcial: chaves ausentes caem no inglês
SWAHILI: dict[str, str] = {
    "main.menu": (
        "Karibu\n1. Jua zaidi\n2. Akaunti yangu\n3. Tuma pesa\n*. Ondoka"
    ),
    "main.goodbye": "Asante kwa kutumia huduma yetu.",
    "account_menu.menu": "Akaunti yangu\n1. Ingia\n2. Fungua akaunti\n0. Rudi",
    "login.enter_pin": "Weka PIN yako ya tarakimu {pin_length}:\n0. Rudi",
    "error.invalid selection": "Chaguo si sahihi.",
    "error.invalid PIN": "PIN si sahihi. Majaribio {attempts_remaining} yamebaki.",
    "error.locked": "Akaunti imefungwa. Jaribu tena baadaye.",
    "error.service unavailable": "Huduma haipatikani. Jaribu tena baadaye.",
}

DEFAULT_CATALOGS: dict[str, dict[str, str]] = {"eng": ENGLISH, "swa": SWAHILI}


class _SafeParams(dict):
    def __missing__(self, key: str) -> str:
        return ""


class CatalogLocaleResolver(LocaleResolver):
    """LocaleResolver baseado em dicionários em memória."""

    def __init__(
        self,
        catalogs: Mapping[str, Mapping[str, str]] | None = None,
        default_locale: str = "eng",
    ) -> None:
        self._catalogs = {k: dict(v) for k, v in (catalogs or DEFAULT_CATALOGS).items()}
        self._default = default_locale

    @property
    def locales(self) -> list[str]:
        return sorted(self._catalogs)

    def _lookup(self, key: str, locale: str) -> str | None:
        text = self._catalogs.get(locale, {}).get(key)
        if text is None and locale != self._default:
            text = self._catalogs.get(self._default, {}).get(key)
        return text

    def resolve_text(
        self,
        key: str,
        locale: str,
        params: Mapping[str, Any] | None = None,
    ) -> str:
        template = self._lookup(key, locale)
        if template is None:
            logger.warning("Missing message key", extra={"key": key, "locale": locale})
            return key

        values = _SafeParams(
            {k: "" if v is None else v for k, v in (params or {}).items()}
        )
        try:
            return template.format_map(values)
        except (ValueError, IndexError):
            logger.warning("Malformed message template", extra={"key": key, "locale": locale})
            return template
