"""
Query planning by root field ownership.

Schema composition is not done here: each subgraph declares the root fields
it owns. An operation is split into one subquery per owning subgraph. Query
fields fan out concurrently in a single stage; mutation fields run serially
in document order, consecutive fields of one subgraph sharing a fetch.
"""

from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from typing import Any, Dict, Iterable, List, Mapping, Optional, Set, Tuple

from graphql import (
    DocumentNode,
    FieldNode,
    FragmentDefinitionNode,
    GraphQLSyntaxError,
    OperationDefinitionNode,
    OperationType,
    SelectionSetNode,
    Visitor,
    parse,
    print_ast,
    visit,
)

from shared.config import SubgraphDefinition
from shared.errors import QueryPlanningError

ROOT_TYPE_NAMES = {
    OperationType.QUERY: "Query",
    OperationType.MUTATION: "Mutation",
}


@dataclass(frozen=True)
class SubgraphFetch:
    """One request to one subgraph."""

    service: str
    query: str
    variables: Dict[str, Any] = field(default_factory=dict)
    operation_name: Optional[str] = None
    response_keys: Tuple[str, ...] = ()


@dataclass(frozen=True)
class QueryPlan:
    """Stages run one after another; fetches inside a stage run concurrently."""

    operation_type: str
    stages: Tuple[Tuple[SubgraphFetch, ...], ...]
    response_keys: Tuple[str, ...]
    local_fields: Mapping[str, Any] = field(default_factory=dict)

    @property
    def fetches(self) -> List[SubgraphFetch]:
        return [fetch for stage in self.stages for fetch in stage]


class QueryPlanner(ABC):
    """Decides which subgraph is called for which part of an operation."""

    @abstractmethod
    def plan(self, query: str, operation_name: Optional[str] = None,
             variables: Optional[Mapping[str, Any]] = None) -> QueryPlan:
        """Build a plan or raise ``QueryPlanningError``."""


class _UsageCollector(Visitor):
    def __init__(self):
        super().__init__()
        self.variables: Set[str] = set()
        self.fragments: Set[str] = set()

    def enter_variable(self, node, *_args):
        self.variables.add(node.name.value)

    def enter_fragment_spread(self, node, *_args):
        self.fragments.add(node.name.value)


class RootFieldPlanner(QueryPlanner):
    """Plan by looking up the owner of each root field."""

    def __init__(self, subgraphs: Iterable[SubgraphDefinition]):
        self._owners: Dict[OperationType, Dict[str, str]] = {
            OperationType.QUERY: {},
            OperationType.MUTATION: {},
        }
        for subgraph in subgraphs:
            self._register(OperationType.QUERY, subgraph.query_fields, subgraph.name)
            self._register(OperationType.MUTATION, subgraph.mutation_fields, subgraph.name)

    def _register(self, operation: OperationType, fields: Iterable[str], service: str) -> None:
        owners = self._owners[operation]
        for field_name in fields:
            if field_name in owners and owners[field_name] != service:
                raise ValueError(
                    f"{ROOT_TYPE_NAMES[operation]}.{field_name} is claimed by both "
                    f"{owners[field_name]} and {service}"
                )
            owners[field_name] = service

    def owner_of(self, operation_type: str, field_name: str) -> Optional[str]:
        return self._owners.get(OperationType(operation_type), {}).get(field_name)

    def plan(self, query: str, operation_name: Optional[str] = None,
             variables: Optional[Mapping[str, Any]] = None) -> QueryPlan:
        try:
            document = parse(query)
        except GraphQLSyntaxError as exc:
            raise QueryPlanningError(exc.message, details={"code": "GRAPHQL_PARSE_FAILED"}) from exc

        operation = self._select_operation(document, operation_name)
        fragments = {
            definition.name.value: definition
            for definition in document.definitions
            if isinstance(definition, FragmentDefinitionNode)
        }
        if operation.operation not in self._owners:
            raise QueryPlanningError(f"{operation.operation.value} operations are not supported")

        root_type = ROOT_TYPE_NAMES[operation.operation]
        owners = self._owners[operation.operation]
        response_keys: List[str] = []
        local_fields: Dict[str, Any] = {}
        # Ordered (service, [field nodes]) groups.
        groups: List[Tuple[str, List[FieldNode]]] = []

        for selection in operation.selection_set.selections:
            if not isinstance(selection, FieldNode):
                raise QueryPlanningError(f"Fragments on the {root_type} root type are not supported")

            field_name = selection.name.value
            response_key = selection.alias.value if selection.alias else field_name
            if response_key not in response_keys:
                response_keys.append(response_key)

            if field_name == "__typename":
                local_fields[response_key] = root_type
                continue

            service = owners.get(field_name)
            if service is None:
                raise QueryPlanningError(f'Cannot query field "{field_name}" on type "{root_type}".')

            if operation.operation == OperationType.MUTATION:
                if groups and groups[-1][0] == service:
                    groups[-1][1].append(selection)
                else:
                    groups.append((service, [selection]))
            else:
                for existing_service, nodes in groups:
                    if existing_service == service:
                        nodes.append(selection)
                        break
                else:
                    groups.append((service, [selection]))

        fetches = [
            self._build_fetch(service, nodes, operation, fragments, variables or {})
            for service, nodes in groups
        ]
        if operation.operation == OperationType.MUTATION:
            stages = tuple((fetch,) for fetch in fetches)
        else:
            stages = (tuple(fetches),) if fetches else ()

        return QueryPlan(
            operation_type=operation.operation.value,
            stages=stages,
            response_keys=tuple(response_keys),
            local_fields=local_fields,
        )

    def _select_operation(self, document: DocumentNode,
                          operation_name: Optional[str]) -> OperationDefinitionNode:
        operations = [
            definition for definition in document.definitions
            if isinstance(definition, OperationDefinitionNode)
        ]
        if not operations:
            raise QueryPlanningError("Document does not contain an operation")
        if operation_name:
            for operation in operations:
                if operation.name and operation.name.value == operation_name:
                    return operation
            raise QueryPlanningError(f'Unknown operation named "{operation_name}".')
        if len(operations) > 1:
            raise QueryPlanningError("Must provide operation name if query contains multiple operations.")
        return operations[0]

    def _build_fetch(self, service: str, nodes: List[FieldNode], operation: OperationDefinitionNode,
                     fragments: Mapping[str, FragmentDefinitionNode],
                     variables: Mapping[str, Any]) -> SubgraphFetch:
        collector = _UsageCollector()
        for node in nodes:
            visit(node, collector)

        used_fragments: List[FragmentDefinitionNode] = []
        pending = sorted(collector.fragments)
        seen: Set[str] = set()
        while pending:
            name = pending.pop()
            if name in seen:
                continue
            seen.add(name)
            fragment = fragments.get(name)
            if fragment is None:
                raise QueryPlanningError(f'Unknown fragment "{name}".')
            used_fragments.append(fragment)
            before = set(collector.fragments)
            visit(fragment, collector)
            pending.extend(sorted(collector.fragments - before))

        variable_definitions = tuple(
            definition for definition in operation.variable_definitions or ()
            if definition.variable.name.value in collector.variables
        )
        subquery = OperationDefinitionNode(
            operation=operation.operation,
            name=operation.name,
            variable_definitions=variable_definitions,
            directives=operation.directives or (),
            selection_set=SelectionSetNode(selections=tuple(nodes)),
        )
        document = DocumentNode(definitions=(subquery, *sorted(used_fragments, key=lambda f: f.name.value)))

        response_keys: List[str] = []
        for node in nodes:
            key = node.alias.value if node.alias else node.name.value
            if key not in response_keys:
                response_keys.append(key)

        return SubgraphFetch(
            service=service,
            query=print_ast(document),
            variables={
                name: value for name, value in variables.items()
                if name in collector.variables
            },
            operation_name=operation.name.value if operation.name else None,
            response_keys=tuple(response_keys),
        )
