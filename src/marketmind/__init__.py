"""MarketMind: marketing agents over a four-tier adaptive memory, served via MCP."""
