"""Biblioteca de guards: navegação, validação, sistema e domínio."""
