"""
Customers subgraph.

``me`` resolves from the ``auth`` claims held in the session; ``signOut``
tombstones them.
"""
