"""
idflow - Identity-verification workflow engine.

Assemble a graph of verification steps (liveness, card capture, scanning),
validate it, and run it in dependency order against remote or simulated services.
"""

__version__ = "1.0.0"
