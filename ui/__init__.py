# ui/__init__.py
"""Pulseboard UI — API client, dashboard session and tkinter window."""
