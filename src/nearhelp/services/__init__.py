"""
NearHelp services
"""
