"""
Base class for Strawberry subgraph services.
"""

import os
from datetime import datetime, timezone
from typing import Iterable, Optional

import strawberry
from strawberry.fastapi import GraphQLRouter

from shared.base_service import BaseService
from shared.config import ServiceConfig
from shared.session_context import build_context_getter, mutation_extension


@strawberry.type
class DeploymentInfo:
    version: str
    environment: str
    message: str
    deployed_at: str


def deployment_info(service_name: str, env: str) -> DeploymentInfo:
    return DeploymentInfo(
        version="1.0.0",
        environment=env,
        message=f"{service_name.title()} subgraph - {os.getenv('GIT_COMMIT', 'local build')}",
        deployed_at=datetime.now(timezone.utc).isoformat(),
    )


class SubgraphService(BaseService):
    """A federation subgraph served under ``/graphql``.

    Resolvers get a ``SessionContext`` as ``info.context`` and propose session
    changes through it; the gateway decides whether they are applied.
    """

    def __init__(self, service_name: str, port: int, query: type,
                 mutation: Optional[type] = None, types: Iterable[type] = (),
                 config: Optional[ServiceConfig] = None):
        super().__init__(service_name, port, config)
        max_bytes = self.config.session_max_header_bytes

        self.schema = strawberry.federation.Schema(
            query=query,
            mutation=mutation,
            types=list(types),
            extensions=[mutation_extension(max_bytes, self.metrics)],
        )
        self.graphql_router = GraphQLRouter(
            self.schema,
            context_getter=build_context_getter(max_bytes, self.metrics),
        )
        self.app.include_router(self.graphql_router, prefix="/graphql")

        self.app.state.subgraph_service = self
