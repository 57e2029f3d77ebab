"""Observabilidade: logging JSON, correlation_id e medição de latência."""
