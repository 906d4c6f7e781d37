"""
NearHelp - Real-time neighbourhood emergency assistance

Coordinates SOS incidents between requesters and nearby volunteer
responders: incident lifecycle, responder tracking, trust scores,
moderation and live fan-out of state changes.
"""

__version__ = "1.0.0"
__author__ = "NearHelp Development Team"
