"""
NearHelp test suite
"""
