"""Angels Bail Bonds automation toolkit.

Fetches, patches and saves n8n workflow graphs over the n8n REST API and
serves MCP tool endpoints for Canva, ClickUp, Google Workspace and n8n.
"""

__version__ = "1.0.0"
