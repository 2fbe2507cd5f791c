from .assistant import build_orchestrator, Orchestrator
