"""
Orders subgraph.

The shopping cart lives in the caller's session. ``cart`` reads it from the
propagated snapshot; ``addToCart`` and ``clearCart`` propose the new cart to
the gateway, which saves it once the request completes.
"""
