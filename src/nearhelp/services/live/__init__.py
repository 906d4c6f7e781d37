"""
Live coordination: presence, websocket fan-out and metrics
"""
