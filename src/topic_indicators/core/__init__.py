"""Core business logic: scoring, provider clients, caching policy and models.

This module is framework-agnostic. It has no dependency on MCP, SQLAlchemy,
or any server framework. The batch job and the MCP tools both import from here.
"""
