"""Geradores de identificadores."""

from __future__ import annotations

import uuid


def new_session_id() -> str:
    """Gera um session_id único."""

    return str(uuid.uuid4())


def new_reservation_id() -> str:
    """Gera identificador de reserva de limite diário."""

    return uuid.uuid4().hex


def new_customer_id() -> str:
    """Gera customer_id curto e legível em tela USSD (ex.: CUST-1A2B3C4D)."""

    return "CUST-" + uuid.uuid4().hex[:8].upper()
