"""Context normalisation and heuristic scoring."""

from .builder import ContextBuilder, ContextObject
from .heuristics import DesignSignals, HeuristicSettings

__all__ = ["ContextBuilder", "ContextObject", "DesignSignals", "HeuristicSettings"]
