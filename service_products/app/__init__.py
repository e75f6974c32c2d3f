"""
Products subgraph.

Product catalog plus a per-session ``recentlyViewed`` list, capped at the
five most recent product ids.
"""
