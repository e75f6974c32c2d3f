"""
Content subgraph service.
"""

from typing import Any, Dict, List, Mapping, Optional

import strawberry
from strawberry.types import Info

from shared.config import ServiceConfig
from shared.subgraph_service import DeploymentInfo, SubgraphService, deployment_info

PREFERENCES_KEY = "preferences"
DEFAULT_LOCALE = "en"

FOOTERS: Dict[str, Dict[str, Any]] = {
    "en": {
        "copyright": "All rights reserved.",
        "links": [("About us", "/about"), ("Contact", "/contact"), ("Privacy", "/privacy")],
    },
    "fr": {
        "copyright": "Tous droits réservés.",
        "links": [("À propos", "/about"), ("Contact", "/contact"), ("Confidentialité", "/privacy")],
    },
    "de": {
        "copyright": "Alle Rechte vorbehalten.",
        "links": [("Über uns", "/about"), ("Kontakt", "/contact"), ("Datenschutz", "/privacy")],
    },
}


@strawberry.federation.type(keys=["id"])
class Content:
    id: strawberry.ID
    title: str

    @classmethod
    def resolve_reference(cls, id: strawberry.ID) -> Optional["Content"]:
        return CONTENTS.get(str(id))


CONTENTS: Dict[str, Content] = {
    "1": Content(id=strawberry.ID("1"), title="Test Content"),
    "2": Content(id=strawberry.ID("2"), title="Another Content"),
}


@strawberry.type
class FooterLink:
    label: str
    url: str


@strawberry.type
class Footer:
    locale: str
    copyright: str
    links: List[FooterLink]


def current_locale(preferences: Any) -> str:
    if isinstance(preferences, Mapping):
        locale = preferences.get("locale")
        if locale in FOOTERS:
            return locale
    return DEFAULT_LOCALE


@strawberry.type
class Query:
    @strawberry.field
    def contents(self) -> List[Content]:
        return list(CONTENTS.values())

    @strawberry.field
    def footer(self, info: Info) -> Footer:
        locale = current_locale(info.context.get(PREFERENCES_KEY))
        footer = FOOTERS[locale]
        return Footer(
            locale=locale,
            copyright=footer["copyright"],
            links=[FooterLink(label=label, url=url) for label, url in footer["links"]],
        )

    @strawberry.field
    def deployment_info_content(self, info: Info) -> DeploymentInfo:
        return deployment_info("content", info.context.request.app.state.subgraph_service.config.env)


@strawberry.type
class Mutation:
    @strawberry.mutation
    def set_locale(self, info: Info, locale: str) -> str:
        if locale not in FOOTERS:
            raise ValueError(f"Unsupported locale: {locale}")

        preferences = info.context.view(PREFERENCES_KEY)
        updated = dict(preferences) if isinstance(preferences, Mapping) else {}
        updated["locale"] = locale
        info.context.propose_mutation({PREFERENCES_KEY: updated})
        return locale


class ContentService(SubgraphService):
    """Content subgraph service implementation."""

    def __init__(self, config: Optional[ServiceConfig] = None):
        super().__init__("content", 4003, Query, Mutation, types=[Content], config=config)

        @self.app.get("/")
        async def root():
            """Root endpoint."""
            return {
                "service": "content",
                "message": "Content subgraph",
                "version": "1.0.0"
            }


def create_app(config: Optional[ServiceConfig] = None):
    """Create FastAPI application."""
    service = ContentService(config)
    return service.app


if __name__ == "__main__":
    service = ContentService()
    service.run()
