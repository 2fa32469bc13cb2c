"""
HTTP route modules for the Cowrite server.

- health: liveness and uptime
- conversations: conversation CRUD, message history, builder conversation
- documents: working documents, lock take-over, undo/redo
- chat: orchestration turns (JSON and NDJSON stream)
"""
