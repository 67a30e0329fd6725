"""Tool scoping — restricts which upstream tools a client token may call."""

from mcp_nexus.errors import ScopeError
from mcp_nexus.security.auth import Identity


def is_tool_allowed(identity: Identity, tool_name: str) -> bool:
    if identity.allowed_tools is None:
        return True
    return tool_name in identity.allowed_tools


def authorize_tool(identity: Identity, tool_name: str) -> None:
    """Raise ScopeError unless the identity may invoke ``tool_name``.

    Matching is exact and case-sensitive. An absent allowlist permits every
    tool; an empty one permits none.
    """
    if not is_tool_allowed(identity, tool_name):
        raise ScopeError(tool_name, list(identity.allowed_tools or ()))
