"""Motor de máquinas de estado guardadas (definição, guards e runtime)."""
