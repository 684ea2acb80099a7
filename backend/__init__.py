# backend/__init__.py
"""Pulseboard Backend — outbound metering client and cached usage service."""
