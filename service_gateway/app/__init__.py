"""
Federation Gateway Service package.

The gateway is the single entry point for client GraphQL requests:
- Session: loads the authoritative session from the store, snapshots it
  for subgraphs and reconciles their mutation proposals exactly once
- Federation: splits each operation by root field owner and fans it out
  to the subgraphs, sequentially or concurrently
- Circuit-breaking for resilient subgraph calls

Structure:
- app.main: FastAPI app, routes, and middleware wiring.
- app.session: store adapters, cookie signing, reconciliation plugin.
- app.federation: planner, propagation, subgraph data sources, executor.
"""
