"""
Per-request gateway context and the plugin hooks around it.
"""

from dataclasses import dataclass, field
from typing import Any, Dict, List, Mapping, Optional, TYPE_CHECKING

from shared.session_models import SessionSnapshot

if TYPE_CHECKING:  # pragma: no cover - imported for typing only
    from ..session.reconciliation import ReconciliationOutcome, RequestMutationLog
    from .data_source import SubgraphResponse


@dataclass
class GatewayRequestContext:
    """Everything one client request owns while it is being served.

    Never shared across requests. ``snapshot`` is captured once and handed
    unchanged to every subgraph call.
    """

    request_id: str
    session_id: str
    session_data: Mapping[str, Any]
    snapshot: SessionSnapshot
    is_new_session: bool = False
    errors: List[Dict[str, Any]] = field(default_factory=list)
    mutation_log: Optional["RequestMutationLog"] = None
    reconciliation: Optional["ReconciliationOutcome"] = None


class GatewayPlugin:
    """Lifecycle hooks invoked by the gateway for every client request."""

    async def request_did_start(self, context: GatewayRequestContext) -> None:
        """Called before any subgraph call is dispatched."""

    async def subgraph_response_received(self, context: GatewayRequestContext,
                                         response: "SubgraphResponse") -> None:
        """Called as each subgraph call completes successfully, in completion order."""

    async def will_send_response(self, context: GatewayRequestContext) -> None:
        """Called once every subgraph call has settled, before the response is written."""
