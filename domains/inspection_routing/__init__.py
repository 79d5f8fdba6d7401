"""
Inspection Routing Domain

Watches the inspection station's image tree and routes every image through
the remote AOI classifier:
- Backlog reconciliation at startup, live watchdog intake afterwards
- One classification per image, the output tree is the record
- Scores above 0.5 go to FAIL, everything else to PASS
"""

__all__ = ["processors", "watchers"]
