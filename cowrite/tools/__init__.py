"""
Tool Belt for Cowrite turns.

- registry: registration, invocation with timing logs, OpenAI schemas
- document_tools: working-doc tools (write_to_doc, list/create/rename/delete, word_count)
- research: search over the user's uploaded files
- delegation: invoke_agent and create_agent
- memory: remember / recall
- http_tools: user-configured HTTP tools behind the URL allow-list
- builder_tools: agent, knowledge and file management for the builder conversation
"""
