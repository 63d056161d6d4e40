"""Bot sessions, login solver, packet traces and the orchestrator."""
