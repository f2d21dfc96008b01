"""Room coordination services: rules adapter, rooms, ratings and the computer opponent.

Everything here is transport-agnostic; Socket.IO handlers and HTTP routes
call into these modules, keeping wire concerns separated from match state.
"""
