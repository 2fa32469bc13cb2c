"""
Orchestration for Cowrite turns.

- state: loop state, tool outputs, delegation tasks, turn context
- master_graph: LangGraph bounded reasoning loop (model step <-> tool step)
- router: best-effort delegation hint
- specialist: invoke_agent execution
- runtime: run_turn entrypoint (lock, loop, release, persist)
"""
