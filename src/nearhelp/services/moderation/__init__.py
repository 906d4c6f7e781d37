"""
Abuse reports and moderation
"""
