"""Tool catalog — maps MCP tool names to the provider pool that serves them."""

from dataclasses import dataclass, field

from mcp_nexus.errors import ValidationError

TAVILY = "tavily"
BRAVE = "brave"
PROVIDERS = (TAVILY, BRAVE)


@dataclass(frozen=True)
class ToolSpec:
    name: str
    provider_id: str
    description: str
    input_schema: dict = field(default_factory=dict)

    def to_mcp(self) -> dict:
        return {
            "name": self.name,
            "description": self.description,
            "inputSchema": self.input_schema,
        }

    def validate_arguments(self, arguments: dict) -> None:
        """Check required arguments against ``input_schema``.

        Raises:
            ValidationError: a required argument is missing or empty.
        """
        properties = self.input_schema.get("properties", {})
        for name in self.input_schema.get("required", ()):
            value = arguments.get(name)
            expected = properties.get(name, {}).get("type")
            if expected == "string" and not (isinstance(value, str) and value.strip()):
                raise ValidationError(f"{self.name} requires a non-empty '{name}'")
            if expected == "array" and not (isinstance(value, list) and value):
                raise ValidationError(f"{self.name} requires a non-empty '{name}' list")
            if value is None:
                raise ValidationError(f"{self.name} requires '{name}'")


_QUERY_SCHEMA = {
    "type": "object",
    "properties": {
        "query": {"type": "string", "description": "Search query"},
        "max_results": {"type": "integer", "minimum": 1, "maximum": 20, "default": 5},
    },
    "required": ["query"],
}

TOOLS: dict[str, ToolSpec] = {
    spec.name: spec
    for spec in (
        ToolSpec(
            name="tavily_search",
            provider_id=TAVILY,
            description="Web search via Tavily, optimized for LLM consumption.",
            input_schema={
                **_QUERY_SCHEMA,
                "properties": {
                    **_QUERY_SCHEMA["properties"],
                    "search_depth": {"type": "string", "enum": ["basic", "advanced"]},
                    "topic": {"type": "string", "enum": ["general", "news"]},
                },
            },
        ),
        ToolSpec(
            name="tavily_extract",
            provider_id=TAVILY,
            description="Extract page content from one or more URLs via Tavily.",
            input_schema={
                "type": "object",
                "properties": {"urls": {"type": "array", "items": {"type": "string"}}},
                "required": ["urls"],
            },
        ),
        ToolSpec(
            name="brave_web_search",
            provider_id=BRAVE,
            description="Web search via the Brave Search API.",
            input_schema=_QUERY_SCHEMA,
        ),
        ToolSpec(
            name="brave_news_search",
            provider_id=BRAVE,
            description="News search via the Brave Search API.",
            input_schema=_QUERY_SCHEMA,
        ),
    )
}


def get_tool(name: str) -> ToolSpec | None:
    return TOOLS.get(name)
