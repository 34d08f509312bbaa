"""
utils/ - Shared Helpers
=======================
Logging setup, domain exceptions, money formatting and referral code helpers.
"""
