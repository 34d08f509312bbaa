"""
security/ - Access Control
===========================
Decorators wrapped around every Telegram handler: who may use the bot,
who may use admin commands, and how often.
"""
