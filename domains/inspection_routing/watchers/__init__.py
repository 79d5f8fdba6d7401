"""
Inspection Routing Watchers

- filesystem.py - Backlog reconciliation and watchdog-driven live intake
"""
