"""ussd_engine: motor de sessões USSD com máquinas de estado guardadas."""

__version__ = "0.1.0"
