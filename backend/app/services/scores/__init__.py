"""Score domain services: metric normalization, composition, the play
ledger, aggregate propagation and ranking.

Routes and socket handlers import from here; nothing in this package
knows about HTTP.
"""
