"""
Cowrite: a shared working document co-edited by a human and an AI master agent.

Packages:
- core: persistence, document locking, undo/redo, settings, events, LLM access
- tools: tool registry and the master / builder / HTTP tool belts
- agents: orchestration turn, reasoning loop, delegation router, specialists
- server: FastAPI HTTP boundary
"""

__version__ = "0.1.0"
