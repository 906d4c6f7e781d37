"""
Outbound notifications and crisis guidance
"""
