"""Rotas HTTP do motor de sessões."""

from __future__ import annotations

from typing import Any

from fastapi import APIRouter, Depends, HTTPException, Response, status
from pydantic import BaseModel

from ussd_engine.api.dependencies import get_limits_provider, get_session_service, get_settings
from ussd_engine.application.session.models import SessionInfo
from ussd_engine.application.session_service import (
    InboundSessionEvent,
    SessionResponse,
    SessionService,
)
from ussd_engine.config.limits import GuardLimitsProvider
from ussd_engine.config.settings import Settings
from ussd_engine.engine.runtime import RuntimeSnapshot
from ussd_engine.observability.logging import get_logger

logger = get_logger(__name__)

router = APIRouter()


class MaintenanceRequest(BaseModel):
    enabled: bool
    service_available: bool | None = None


class SessionList(BaseModel):
    sessions: list[SessionInfo]
    count: int


@router.get("/health")
def health(settings: Settings = Depends(get_settings)) -> dict[str, str]:
    """Healthcheck simples."""
    return {"status": "ok", "service": settings.service_name, "version": settings.version}


@router.post("/sessions/events", response_model=SessionResponse)
async def session_event(
    event: InboundSessionEvent,
    service: SessionService = Depends(get_session_service),
) -> SessionResponse:
    """Processa um evento inbound e retorna a próxima tela."""
    return await service.handle(event)


@router.delete("/sessions/{session_id}", status_code=status.HTTP_204_NO_CONTENT)
def end_session(
    session_id: str,
    service: SessionService = Depends(get_session_service),
) -> Response:
    """Cancela a sessão explicitamente."""
    if not service.end_session(session_id):
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="session_not_found")
    return Response(status_code=status.HTTP_204_NO_CONTENT)


@router.delete("/reservations/{reservation_id}", status_code=status.HTTP_204_NO_CONTENT)
def release_reservation(
    reservation_id: str,
    service: SessionService = Depends(get_session_service),
) -> Response:
    """Libera a reserva do limite diário quando o backend não concluiu a transferência."""
    if not service.release_reservation(reservation_id):
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND, detail="reservation_not_found"
        )
    return Response(status_code=status.HTTP_204_NO_CONTENT)


@router.get("/sessions", response_model=SessionList)
def list_sessions(service: SessionService = Depends(get_session_service)) -> SessionList:
    """Lista sessões ativas (sem PII)."""
    sessions = service.registry.list_sessions()
    return SessionList(sessions=sessions, count=len(sessions))


@router.get("/sessions/{session_id}", response_model=RuntimeSnapshot)
def debug_session(
    session_id: str,
    service: SessionService = Depends(get_session_service),
) -> RuntimeSnapshot:
    """Snapshot do runtime para depuração (chaves de contexto, sem valores)."""
    snapshot = service.debug_session(session_id)
    if snapshot is None:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="session_not_found")
    return snapshot


@router.post("/admin/maintenance")
def set_maintenance(
    body: MaintenanceRequest,
    limits: GuardLimitsProvider = Depends(get_limits_provider),
) -> dict[str, Any]:
    """Troca o snapshot de limites; vale no próximo evento de cada sessão."""
    changes: dict[str, Any] = {"maintenance_mode": body.enabled}
    if body.service_available is not None:
        changes["service_available"] = body.service_available
    current = limits.update(**changes)
    logger.warning("Guard limits snapshot replaced", extra=changes)
    return {
        "maintenance_mode": current.maintenance_mode,
        "service_available": current.service_available,
    }
