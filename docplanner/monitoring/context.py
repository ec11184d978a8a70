# docplanner/monitoring/context.py
"""
Context helpers using contextvars for request/tool/document propagation.
"""
import contextvars

request_id_var = contextvars.ContextVar("request_id", default=None)
tool_var = contextvars.ContextVar("tool", default=None)
document_id_var = contextvars.ContextVar("document_id", default=None)

def set_request_context(request_id=None, tool=None, document_id=None):
    if request_id is not None:
        request_id_var.set(request_id)
    if tool is not None:
        tool_var.set(tool)
    if document_id is not None:
        document_id_var.set(document_id)

def get_request_context():
    return {
        "request_id": request_id_var.get(),
        "tool": tool_var.get(),
        "document_id": document_id_var.get(),
    }

def bind_tool_context(tool, document_id):
    """Set tool and document for one call, even when document_id is None.

    Returns tokens for `reset_tool_context`.
    """
    return (tool_var.set(tool), document_id_var.set(document_id))

def reset_tool_context(tokens):
    for token in reversed(tokens):
        token.var.reset(token)
