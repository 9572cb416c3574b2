"""Prompt expansion, app-server JSON-RPC transport and per-turn state for a Codex agent."""

__version__ = "0.1.0"
__all__ = ["app_server", "prompt_args", "turn_state"]