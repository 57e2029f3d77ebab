#!/usr/bin/env python
"""Simulador interativo de sessão USSD no terminal.

Usa o backend externo em memória com um assinante de exemplo:
    telefone 254700000001, PIN 24680, saldo 80000
    reclamação CLM-1001

Comandos:
    <texto>   envia o input (ex.: "1", "0" voltar, "*" sair)
    :new      abre nova sessão
    :debug    mostra o snapshot do runtime
    :quit     encerra

Uso:
    pip install -e .
    python scripts/simulate_session.py [--phone 254700000001] [--locale eng]
"""

from __future__ import annotations

import argparse
import asyncio
from decimal import Decimal

from ussd_engine.application.container import build_container
from ussd_engine.application.session_service import InboundSessionEvent
from ussd_engine.config.limits import GuardLimits
from ussd_engine.config.settings import Settings
from ussd_engine.domain.protocols.external_query import ClaimRecord
from ussd_engine.infra.external_query_memory import InMemoryExternalQuery
from ussd_engine.observability.logging import configure_logging
from ussd_engine.observability.middleware import set_correlation_id
from ussd_engine.utils.ids import new_session_id

DEMO_PHONE = "254700000001"
SERVICE_CODE = "*384#"


def _demo_backend() -> InMemoryExternalQuery:
    return InMemoryExternalQuery(
        balances={DEMO_PHONE: Decimal("80000")},
        pins={DEMO_PHONE: "24680"},
        claims={
            "CLM-1001": ClaimRecord(
                claim_id="CLM-1001", status="in review", description="Demo claim"
            )
        },
    )


async def main(phone: str, locale: str) -> None:
    settings = Settings(environment="development", log_level="WARNING")
    configure_logging(settings.log_level, settings.service_name)
    container = build_container(
        settings,
        limits=GuardLimits.for_environment(settings.environment),
        external_query=_demo_backend(),
    )
    service = container.service

    session_id = new_session_id()
    set_correlation_id(session_id)
    text = ""
    print(f"📱 Sessão {session_id[:8]}... (telefone {phone})\n")

    while True:
        event = InboundSessionEvent(
            session_id=session_id,
            phone_number=phone,
            service_code=SERVICE_CODE,
            text=text,
            locale=locale,
        )
        response = await service.handle(event)
        print(response.formatted)
        print(f"   [{'.'.join(response.state_path)}]\n")

        if response.end_session:
            print("🔚 Sessão encerrada. Use :new para recomeçar ou :quit para sair.")

        command = input("> ").strip()
        while command == ":debug":
            snapshot = service.debug_session(session_id)
            print(snapshot.model_dump_json(indent=2) if snapshot else "(sessão inexistente)")
            command = input("> ").strip()
        if command == ":quit":
            return
        if command == ":new":
            session_id = new_session_id()
            set_correlation_id(session_id)
            text = ""
            continue
        # Gateways enviam o histórico acumulado separado por "*"
        text = f"{text}*{command}" if text else command


if __name__ == "__main__":
    parser = argparse.ArgumentParser(description="Simulador de sessão USSD")
    parser.add_argument("--phone", default=DEMO_PHONE)
    parser.add_argument("--locale", default="eng")
    args = parser.parse_args()
    asyncio.run(main(args.phone, args.locale))
