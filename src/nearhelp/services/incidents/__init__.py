"""
SOS incident lifecycle
"""
