"""
services/ - Business Logic Layer
=================================
Services validate input, enforce marketplace rules and build the chat
messages handlers send. They receive their repositories in the
constructor so tests can pass in-memory fakes.
"""
