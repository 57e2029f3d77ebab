"""Fluxos de exemplo (menu principal e sub-fluxos).

Cada fluxo é montado a partir de ``FlowDependencies`` na inicialização;
definições inválidas levantam ``ConfigurationError`` no startup.
"""

from ussd_engine.application.flows.dependencies import FlowDependencies
from ussd_engine.application.flows.main import build_main_flow

__all__ = ["FlowDependencies", "build_main_flow"]
