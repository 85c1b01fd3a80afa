"""Runtime - turn orchestration, tool dispatch, sandboxing, and logging.

Contains: orchestrator, dispatcher, sandbox, observability.
"""
