"""
Agent Bridge - supervised AI agent sessions for IDE hosts.

Runs agent turns through the Claude Agent SDK (or the Messages API directly),
translates the streamed output into a line-oriented IPC protocol, and offers
side commands for transcripts, file rewind and MCP server probing.

Quick Start:
    pip install -e .
    agent-bridge send "your prompt here" --cwd /path/to/project
"""

__version__ = "0.1.0"

__all__ = ["__version__"]
