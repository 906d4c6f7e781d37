"""
Test doubles for NearHelp collaborators
"""
