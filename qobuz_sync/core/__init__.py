"""
Core of the sync engine: session context, correlation tokens, task table,
event bus and error types.
"""
