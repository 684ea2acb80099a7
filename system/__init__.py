# system/__init__.py
"""Pulseboard System — configuration and shared-secret auth."""
