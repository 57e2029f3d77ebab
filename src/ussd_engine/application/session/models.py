"""Models de sessão: Session e SessionInfo.

Session é a unidade de interação com um assinante:
- Uma sessão = um session_id e exatamente um runtime raiz vivo
- Destruída em estado terminal, expiração por inatividade ou cancelamento
- Pertence exclusivamente ao SessionRegistry
"""

from __future__ import annotations

import asyncio
from dataclasses import dataclass, field
from datetime import UTC, datetime

from pydantic import BaseModel, Field

from ussd_engine.engine.runtime import MachineRuntime


@dataclass(slots=True, eq=False)
class Session:
    """Sessão viva (em memória) com seu runtime e lock de serialização."""

    session_id: str
    identity_key: str
    service_code: str
    locale: str
    runtime: MachineRuntime
    last_activity_at: float
    generation: int
    created_at: datetime = field(default_factory=lambda: datetime.now(tz=UTC))
    created_in_request: bool = True
    resumed_after_expiry: bool = False
    lock: asyncio.Lock = field(default_factory=asyncio.Lock)

    def info(self, now: float, timeout_seconds: int) -> SessionInfo:
        return SessionInfo(
            session_id=self.session_id,
            identity=self.identity_key[-4:],
            service_code=self.service_code,
            locale=self.locale,
            state_path=list(self.runtime.state_path),
            created_at=self.created_at,
            idle_seconds=round(max(now - self.last_activity_at, 0.0), 1),
            expires_in_seconds=round(max(timeout_seconds - (now - self.last_activity_at), 0.0), 1),
        )


class SessionInfo(BaseModel):
    """Resumo de sessão ativa para listagem/monitoramento (sem PII)."""

    session_id: str
    identity: str = Field(description="Últimos 4 dígitos da identidade")
    service_code: str
    locale: str
    state_path: list[str]
    created_at: datetime
    idle_seconds: float
    expires_in_seconds: float
