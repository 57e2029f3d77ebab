"""Adaptadores de infraestrutura (Redis, HTTP, catálogos de texto)."""
