"""Package `session`: ciclo de vida das sessões vivas.

Exports principais:
- Session / SessionInfo: modelos de sessão (de session/models.py)
- SessionRegistry: dono das sessões, TTL e serialização (de session/registry.py)
"""

from __future__ import annotations

from ussd_engine.application.session.models import Session, SessionInfo
from ussd_engine.application.session.registry import SessionRegistry

__all__ = ["Session", "SessionInfo", "SessionRegistry"]
