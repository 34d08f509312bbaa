"""
handlers/ - Presentation Layer
================================
Telegram command, button and text handlers. Each one parses the update,
calls a Service, and replies in Markdown. Inline buttons all go through
callback_router; marketplace rules live in the services.
"""
