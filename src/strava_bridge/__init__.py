"""Strava MCP Bridge - OAuth sessions, webhooks and MCP tools for Strava."""
