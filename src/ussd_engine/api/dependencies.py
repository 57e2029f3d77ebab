"""Dependências injetadas nas rotas."""

from __future__ import annotations

from fastapi import Request

from ussd_engine.application.session_service import SessionService
from ussd_engine.config.limits import GuardLimitsProvider
from ussd_engine.config.settings import Settings


def get_settings(request: Request) -> Settings:
    """Retorna settings da aplicação."""

    return request.app.state.settings


def get_session_service(request: Request) -> SessionService:
    """Retorna o serviço de sessões."""

    return request.app.state.container.service


def get_limits_provider(request: Request) -> GuardLimitsProvider:
    """Retorna o provedor do snapshot de limites."""
    return request.app.state.container.limits
