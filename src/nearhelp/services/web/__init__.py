"""
HTTP and websocket API
"""
