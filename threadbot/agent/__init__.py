"""Agent execution core — state machine, prompt assembly, tools, runner."""
