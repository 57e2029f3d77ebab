"""Configurações centralizadas do ussd_engine.

Este módulo exporta:
- Settings: classe de configuração via variáveis de ambiente
- get_settings: função cacheada para obter instância única
- GuardLimits / GuardLimitsProvider: snapshot imutável de limites

Uso típico:
    from ussd_engine.config import get_settings, GuardLimitsProvider
"""

from ussd_engine.config.limits import GuardLimits, GuardLimitsProvider
from ussd_engine.config.settings import USSD_MAX_MESSAGE_LENGTH, Settings, get_settings

__all__ = [
    "Settings",
    "get_settings",
    "GuardLimits",
    "GuardLimitsProvider",
    "USSD_MAX_MESSAGE_LENGTH",
]
