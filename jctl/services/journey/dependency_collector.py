"""
Dependency Collector - walks a journey's node graph once and gathers every object it needs

Wave 1 fetches all top-level nodes, wave 2 fetches the inner nodes of container nodes.
Only after both waves are dependency objects (scripts, email templates, SAML2 entities,
circles of trust, social providers, themes) fetched.
"""

import asyncio
import json
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional
from loguru import logger

from ...core.async_utils import gather_settled
from ...core.exceptions import JourneyExportError, ServiceError
from ...core.journey.encoding import encode_base64url
from ...core.journey.gateway import ConfigGateway
from ...core.journey.journey_models import PlatformContext
from ...core.journey.node_types import (
    EMAIL_TEMPLATE_NODE_TYPES,
    SAML2_ENTITY_PROPERTIES,
    SAML2_NODE_TYPE,
    SELECT_IDP_NODE_TYPE,
    SOCIAL_PROVIDER_HANDLER_NODE_TYPE,
    is_container,
    node_type_of,
    requires_script,
)


def parse_stage_theme(stage: Any) -> Optional[str]:
    """
    Theme id referenced by a container node's stage field

    The stage is either JSON ({"themeId": "..."}) or the legacy "themeId=<id>" string.
    Anything unparseable means no theme reference.
    """
    if not stage or not isinstance(stage, str):
        return None
    try:
        parsed = json.loads(stage)
        if isinstance(parsed, dict) and parsed.get('themeId'):
            return parsed['themeId']
    except json.JSONDecodeError:
        pass
    if stage.startswith('themeId='):
        return stage.split('=')[1] or None
    return None


class FederationCatalog:
    """
    SAML2 entity and circle-of-trust catalogs, fetched at most once

    Create one per top-level export or import operation; never share across operations.
    """

    def __init__(self, gateway: ConfigGateway):
        self.gateway = gateway
        self._providers: Optional[List[Dict[str, Any]]] = None
        self._circles: Optional[List[Dict[str, Any]]] = None
        self._lock = asyncio.Lock()

    async def providers(self) -> List[Dict[str, Any]]:
        async with self._lock:
            if self._providers is None:
                self._providers = await self.gateway.list_saml2_providers()
                logger.debug(f"Cached {len(self._providers)} SAML2 entity providers")
            return self._providers

    async def circles_of_trust(self) -> List[Dict[str, Any]]:
        async with self._lock:
            if self._circles is None:
                self._circles = await self.gateway.list_circles_of_trust()
                logger.debug(f"Cached {len(self._circles)} circles of trust")
            return self._circles


@dataclass
class DependencySet:
    """Everything collected for one journey; scripts keep their platform (base64) form"""
    tree: Dict[str, Any]
    nodes: Dict[str, Dict[str, Any]] = field(default_factory=dict)
    inner_nodes: Dict[str, Dict[str, Any]] = field(default_factory=dict)
    scripts: Dict[str, Dict[str, Any]] = field(default_factory=dict)
    email_templates: Dict[str, Dict[str, Any]] = field(default_factory=dict)
    saml2_entities: Dict[str, Dict[str, Any]] = field(default_factory=dict)
    circles_of_trust: Dict[str, Dict[str, Any]] = field(default_factory=dict)
    social_identity_providers: Dict[str, Dict[str, Any]] = field(default_factory=dict)
    themes: List[Dict[str, Any]] = field(default_factory=list)


@dataclass
class _Walk:
    """Accumulators filled while inspecting nodes"""
    script_ids: Dict[str, None] = field(default_factory=dict)  # insertion-ordered set
    template_names: Dict[str, None] = field(default_factory=dict)
    saml2_nodes: List[Dict[str, Any]] = field(default_factory=list)
    needs_social_providers: bool = False
    provider_filter: Dict[str, None] = field(default_factory=dict)
    theme_refs: Dict[str, None] = field(default_factory=dict)
    inner_refs: List[Dict[str, Any]] = field(default_factory=list)


class DependencyCollector:
    """Collect a journey's nodes, inner nodes and dependency objects"""

    def __init__(self, gateway: ConfigGateway, context: PlatformContext,
                 federation: Optional[FederationCatalog] = None):
        self.gateway = gateway
        self.context = context
        self.federation = federation or FederationCatalog(gateway)
        self.logger = logger

    async def collect(self, tree: Dict[str, Any], deps: bool = True) -> DependencySet:
        """Walk the journey graph; without deps only nodes and inner nodes are gathered"""
        tree_id = tree.get('_id', '')
        result = DependencySet(tree=tree)
        walk = _Walk()

        # Wave 1: every top-level node, all complete before inspection
        node_refs = tree.get('nodes', {})
        nodes = await self._fetch_nodes(
            tree_id, [(node_id, info.get('nodeType', '')) for node_id, info in node_refs.items()]
        )
        for node in nodes:
            self.logger.debug(f"Node {node['_id']} ({node_type_of(node)})")
            result.nodes[node['_id']] = node
            self._inspect(node, walk, deps, inner=False)

        # Wave 2: inner nodes of container nodes
        pending = []
        seen = set(result.nodes)
        for ref in walk.inner_refs:
            if ref.get('_id') and ref['_id'] not in seen:
                seen.add(ref['_id'])
                pending.append((ref['_id'], ref.get('nodeType', '')))
        for inner_node in await self._fetch_nodes(tree_id, pending):
            self.logger.debug(f"Inner node {inner_node['_id']} ({node_type_of(inner_node)})")
            result.inner_nodes[inner_node['_id']] = inner_node
            self._inspect(inner_node, walk, deps, inner=True)

        if not deps:
            return result

        for saml2_node in walk.saml2_nodes:
            entities, circles = await self._saml2_dependencies(saml2_node)
            for entity in entities:
                result.saml2_entities[entity['_id']] = entity
            for circle in circles:
                result.circles_of_trust[circle['_id']] = circle

        if walk.needs_social_providers:
            for provider in await self.gateway.list_social_providers():
                if walk.provider_filter and provider.get('_id') not in walk.provider_filter:
                    continue
                result.social_identity_providers[provider['_id']] = provider
                if provider.get('transform'):
                    walk.script_ids[provider['transform']] = None

        result.email_templates = await self._fetch_email_templates(list(walk.template_names))
        result.scripts = await self._fetch_scripts(tree_id, list(walk.script_ids))

        if self.context.supports_themes():
            result.themes = await self._fetch_themes(tree_id, walk.theme_refs)

        return result

    def _inspect(self, node: Dict[str, Any], walk: _Walk, deps: bool, inner: bool) -> None:
        """Record what a single node contributes"""
        node_type = node_type_of(node)

        if not inner and is_container(node_type):
            walk.inner_refs.extend(node.get('nodes') or [])
            theme_id = parse_stage_theme(node.get('stage'))
            if theme_id:
                walk.theme_refs[theme_id] = None

        if not deps:
            return

        if requires_script(node):
            walk.script_ids[node['script']] = None

        if (node_type in EMAIL_TEMPLATE_NODE_TYPES
                and self.context.supports_email_templates()
                and node.get('emailTemplateName')):
            walk.template_names[node['emailTemplateName']] = None

        if node_type == SAML2_NODE_TYPE:
            if inner:
                self.logger.warning(f"SAML2 inner node {node['_id']}: dependencies collected, combination is untested")
            walk.saml2_nodes.append(node)

        if node_type == SOCIAL_PROVIDER_HANDLER_NODE_TYPE:
            walk.needs_social_providers = True

        if node_type == SELECT_IDP_NODE_TYPE:
            for provider_id in node.get('filteredProviders') or []:
                walk.provider_filter[provider_id] = None

    async def _fetch_nodes(self, tree_id: str, refs: List[tuple]) -> List[Dict[str, Any]]:
        nodes, failures = await gather_settled(
            self.gateway.get_node(node_id, node_type) for node_id, node_type in refs
        )
        if failures:
            raise JourneyExportError(
                f"Error reading {len(failures)} node(s) of journey {tree_id}: {failures[0]}"
            ) from failures[0]
        return nodes

    async def _fetch_email_template(self, name: str) -> Dict[str, Any]:
        try:
            return await self.gateway.get_email_template(name)
        except ServiceError as e:
            self.logger.error(f"{e}: Email Template \"{name}\"")
            raise

    async def _fetch_email_templates(self, names: List[str]) -> Dict[str, Dict[str, Any]]:
        templates, _ = await gather_settled(self._fetch_email_template(name) for name in names)
        return {template['_id'].split('/')[-1]: template for template in templates}

    async def _fetch_scripts(self, tree_id: str, script_ids: List[str]) -> Dict[str, Dict[str, Any]]:
        scripts, failures = await gather_settled(self.gateway.get_script(script_id) for script_id in script_ids)
        if failures:
            raise JourneyExportError(
                f"Error reading {len(failures)} script(s) of journey {tree_id}: {failures[0]}"
            ) from failures[0]
        return {script['_id']: script for script in scripts}

    async def _fetch_themes(self, tree_id: str, theme_refs: Dict[str, None]) -> List[Dict[str, Any]]:
        try:
            all_themes = await self.gateway.get_themes()
        except ServiceError as e:
            self.logger.error(f"Error reading themes: {e}")
            return []
        return [
            theme for theme in all_themes
            if theme.get('_id') in theme_refs
            or theme.get('name') in theme_refs
            or tree_id in (theme.get('linkedTrees') or [])
        ]

    async def _saml2_dependencies(self, node: Dict[str, Any]) -> tuple:
        """SAML2 entities named by a federation node and the circles of trust containing them"""
        providers = await self.federation.providers()
        circles = await self.federation.circles_of_trust()

        entities = []
        for prop in SAML2_ENTITY_PROPERTIES:
            value = node.get(prop)
            if not value:
                continue
            entity_id = value.split('/')[-1] if prop == 'metaAlias' else value
            stub = next((p for p in providers if p.get('entityId') == entity_id), None)
            if stub is None:
                continue
            entity = dict(await self.gateway.get_saml2_provider(stub['location'], stub['_id']))
            # import needs to know whether to use the remote-entity creation path
            entity['entityLocation'] = stub['location']
            if stub['location'] == 'remote':
                metadata = await self.gateway.get_saml2_metadata(entity['entityId'])
                entity['base64EntityXML'] = encode_base64url(metadata)
            entities.append(entity)

        trusted_ids = {f"{entity['entityId']}|saml2" for entity in entities}
        matched = [
            circle for circle in circles
            if any(provider in trusted_ids for provider in circle.get('trustedProviders', []))
        ]
        return entities, matched
