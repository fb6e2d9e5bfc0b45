"""
                Restaurant Order Engine

Multi-tenant order lifecycle and payment settlement engine: orders move
through a fixed state machine, and each order is settled at most once.
"""

__version__ = "1.0.0"
