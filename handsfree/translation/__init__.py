"""Translation: backend interface, remote and local backends, response cache, orchestrator."""
