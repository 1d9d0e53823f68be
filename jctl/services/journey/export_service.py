"""
Export Bundler - assembles single- and multi-journey export documents
"""

import copy
import getpass
import json
from datetime import datetime, timezone
from typing import Any, Dict, Optional
from loguru import logger

from ...core.exceptions import GatewayError, JctlError, JourneyExportError
from ...core.journey.encoding import convert_base64_text_to_array, decode
from ...core.journey.gateway import ConfigGateway
from ...core.journey.journey_models import (
    ExportOptions,
    MultiTreeExport,
    PlatformContext,
    SingleTreeExport,
)
from ...core.version import get_version
from .dependency_collector import DependencyCollector, DependencySet, FederationCatalog


def serialize_script(script: Dict[str, Any], use_string_arrays: bool) -> Dict[str, Any]:
    """
    Copy of a platform script with its base64 body in export form

    Line array when use_string_arrays, otherwise the decoded text as a JSON string.
    """
    exported = copy.deepcopy(script)
    body = exported.get('script')
    if isinstance(body, str):
        exported['script'] = (
            convert_base64_text_to_array(body) if use_string_arrays else json.dumps(decode(body))
        )
    return exported


class JourneyExportService:
    """Build export bundles; never mutates platform state"""

    def __init__(self, gateway: ConfigGateway, context: PlatformContext):
        self.gateway = gateway
        self.context = context
        self.logger = logger

    def build_meta(self) -> Dict[str, Any]:
        """Top-level metadata block of an export document"""
        try:
            exported_by = getpass.getuser()
        except OSError:
            exported_by = ''
        return {
            'origin': self.context.platform_url,
            'originAmVersion': self.context.am_version or '',
            'exportedBy': exported_by,
            'exportDate': datetime.now(timezone.utc).isoformat(),
            'exportTool': 'jctl',
            'exportToolVersion': get_version(),
        }

    def bundle(self, collected: DependencySet, options: ExportOptions) -> SingleTreeExport:
        """Turn collected objects into a single-journey export document"""
        return SingleTreeExport(
            meta=self.build_meta(),
            inner_nodes=collected.inner_nodes,
            nodes=collected.nodes,
            scripts={
                script_id: serialize_script(script, options.use_string_arrays)
                for script_id, script in collected.scripts.items()
            },
            email_templates=collected.email_templates,
            social_identity_providers=collected.social_identity_providers,
            themes=collected.themes,
            saml2_entities=collected.saml2_entities,
            circles_of_trust=collected.circles_of_trust,
            tree=collected.tree,
        )

    async def export_tree(self, tree_id: str, options: Optional[ExportOptions] = None,
                          federation: Optional[FederationCatalog] = None) -> SingleTreeExport:
        """Export one journey with its nodes and (optionally) dependencies"""
        options = options or ExportOptions()
        tree = await self.gateway.get_tree(tree_id)
        self.logger.info(f"Exporting journey {tree_id}")
        if tree.get('identityResource'):
            self.logger.debug(f"identityResource: {tree['identityResource']}")

        collector = DependencyCollector(self.gateway, self.context, federation)
        try:
            collected = await collector.collect(tree, deps=options.deps)
        except GatewayError as e:
            raise JourneyExportError(f"Error exporting journey {tree_id}: {e}") from e

        return self.bundle(collected, options)

    async def export_trees(self, options: Optional[ExportOptions] = None) -> MultiTreeExport:
        """Export every journey of the realm into one document with a single meta block"""
        options = options or ExportOptions()
        federation = FederationCatalog(self.gateway)
        document = MultiTreeExport(meta=self.build_meta())

        for tree in await self.gateway.list_trees():
            tree_id = tree['_id']
            try:
                bundle = await self.export_tree(tree_id, options, federation)
            except JctlError as e:
                self.logger.error(f"Error exporting journey {tree_id}: {e}")
                continue
            bundle.meta = None
            document.trees[tree_id] = bundle

        self.logger.info(f"Exported {len(document.trees)} journey(s)")
        return document
