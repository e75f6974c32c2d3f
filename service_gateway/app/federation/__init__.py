"""
Federation package for the Gateway Service.

Contains the pieces that turn one client operation into subgraph calls:

- planner: root-field ownership split into sequential/parallel stages
- propagation: session snapshot and cookie headers for outbound calls
- data_source: HTTP client wrapper per subgraph, mutation carrier parsing
- executor: runs a plan, notifies plugins, stitches the response
"""

from .context import GatewayPlugin, GatewayRequestContext
from .planner import QueryPlan, QueryPlanner, RootFieldPlanner, SubgraphFetch
from .propagation import SessionPropagator
from .data_source import RemoteGraphQLDataSource, SubgraphResponse
from .executor import FederatedExecutor

__all__ = [
    "GatewayPlugin",
    "GatewayRequestContext",
    "QueryPlan",
    "QueryPlanner",
    "RootFieldPlanner",
    "SubgraphFetch",
    "SessionPropagator",
    "RemoteGraphQLDataSource",
    "SubgraphResponse",
    "FederatedExecutor",
]
