"""Dispatch core and host adapters.

Coercion, error responses, the dispatcher, and the ASGI / legacy
translation shims.
"""
