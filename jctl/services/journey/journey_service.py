"""
Journey service - export, import, delete and describe journeys

Facade over the collector/bundler, resolver, reconciler and orphan detection.
Every operation runs against the gateway and platform context given at construction.
"""

import json
from collections import Counter
from pathlib import Path
from typing import Any, Dict, List, Mapping, Optional
from loguru import logger
from pydantic import ValidationError as ModelValidationError

from ...core.async_utils import gather_settled
from ...core.exceptions import GatewayError, JctlError, JourneyError, JourneyImportError, ServiceError
from ...core.journey.gateway import ConfigGateway
from ...core.journey.journey_models import (
    BatchImportResult,
    DeleteStatus,
    ExportOptions,
    ImportOptions,
    ImportStatus,
    JourneySummary,
    MultiTreeExport,
    ObjectStatus,
    OrphanReport,
    PlatformContext,
    SingleTreeExport,
)
from ...core.journey.node_types import is_container, node_type_of, ootb_node_types
from .dependency_collector import FederationCatalog
from .export_service import JourneyExportService
from .import_reconciler import ImportReconciler
from .import_resolver import installed_journey_names, resolve_dependencies
from .orphan_service import OrphanService


MISSING_CONTAINER_MESSAGE = 'Unable to read SMS config: Node did not exist'

JOURNEY_FILE_SUFFIX = '.journey.json'


def load_journeys(document: Dict[str, Any]) -> Dict[str, SingleTreeExport]:
    """
    Journeys of an export document keyed by name

    Accepts the multi-journey form ({meta, trees}) and the single-journey form.
    """
    if not isinstance(document, dict):
        raise JourneyImportError("Export document must be a JSON object")
    try:
        if 'trees' in document:
            return {
                name: SingleTreeExport.model_validate(bundle)
                for name, bundle in (document.get('trees') or {}).items()
            }
        bundle = SingleTreeExport.model_validate(document)
    except ModelValidationError as e:
        raise JourneyImportError(f"Invalid export document: {e}") from e
    if not bundle.tree_id:
        raise JourneyImportError("Export document has no journey (missing tree._id)")
    return {bundle.tree_id: bundle}


def describe_tree(bundle: SingleTreeExport) -> Dict[str, Any]:
    """Summary of a journey bundle: name, node type counts, scripts and email templates"""
    node_types = Counter(
        node_type_of(node) for node in list(bundle.nodes.values()) + list(bundle.inner_nodes.values())
    )
    return {
        'treeName': bundle.tree_id,
        'nodeTypes': dict(node_types),
        'scripts': {script.get('name'): script.get('description') for script in bundle.scripts.values()},
        'emailTemplates': {
            template_id: template.get('displayName') for template_id, template in bundle.email_templates.items()
        },
    }


def load_journeys_from_files(directory: Path) -> Dict[str, SingleTreeExport]:
    """Journeys of every *.journey.json file in a directory, keyed by name"""
    journeys: Dict[str, SingleTreeExport] = {}
    files = sorted(path for path in directory.iterdir() if path.name.lower().endswith(JOURNEY_FILE_SUFFIX))
    for path in files:
        try:
            document = json.loads(path.read_text(encoding='utf-8'))
        except (OSError, json.JSONDecodeError) as e:
            raise JourneyImportError(f"Unable to read {path}: {e}") from e
        try:
            journeys.update(load_journeys(document))
        except JourneyImportError as e:
            raise JourneyImportError(f"{path}: {e}") from e
    return journeys


def journey_categories(tree: Dict[str, Any]) -> List[str]:
    """UI categories of a journey; stored as a JSON-encoded list in uiConfig"""
    categories = (tree.get('uiConfig') or {}).get('categories')
    if isinstance(categories, str):
        try:
            categories = json.loads(categories)
        except json.JSONDecodeError:
            return []
    return [str(c) for c in categories] if isinstance(categories, list) else []


class JourneyService:
    """Journey operations for one platform realm"""

    def __init__(self, gateway: ConfigGateway, context: PlatformContext):
        self.gateway = gateway
        self.context = context
        self.exporter = JourneyExportService(gateway, context)
        self.reconciler = ImportReconciler(gateway, context)
        self.orphans = OrphanService(gateway)
        self.logger = logger

    # ========== List ==========

    async def is_custom(self, tree: Dict[str, Any]) -> bool:
        """
        True when the journey uses a node type that is not out-of-the-box for the
        platform's AM version, including the inner nodes of its page nodes
        """
        ootb = ootb_node_types(self.context.am_version)
        if ootb is None:
            return True

        containers = []
        for node_id, info in (tree.get('nodes') or {}).items():
            node_type = info.get('nodeType', '')
            if node_type not in ootb:
                return True
            if is_container(node_type):
                containers.append((node_id, node_type))

        pages, failures = await gather_settled(
            self.gateway.get_node(node_id, node_type) for node_id, node_type in containers
        )
        for failure in failures:
            self.logger.error(f"Error reading a container node of journey {tree.get('_id')}: {failure}")
        return any(
            inner.get('nodeType') not in ootb
            for page in pages
            for inner in page.get('nodes') or []
        )

    async def list_journeys(self, analyze: bool = False) -> List[JourneySummary]:
        """Journeys of the realm sorted by name; analyze also flags journeys with custom nodes"""
        trees = sorted(await self.gateway.list_trees(), key=lambda tree: tree['_id'])
        custom = [False] * len(trees)
        if analyze:
            if ootb_node_types(self.context.am_version) is None:
                self.logger.warning(f"Unknown AM version '{self.context.am_version}', every journey counts as custom")
            custom = [await self.is_custom(tree) for tree in trees]

        return [
            JourneySummary(
                name=tree['_id'],
                enabled=tree.get('enabled') is not False,
                categories=journey_categories(tree),
                custom=flagged,
            )
            for tree, flagged in zip(trees, custom)
        ]

    # ========== Export ==========

    async def export_journey(self, journey_id: str, options: Optional[ExportOptions] = None) -> SingleTreeExport:
        """Export a single journey with its dependencies"""
        return await self.exporter.export_tree(journey_id, options)

    async def export_journeys(self, options: Optional[ExportOptions] = None) -> MultiTreeExport:
        """Export every journey of the realm"""
        return await self.exporter.export_trees(options)

    async def export_journeys_to_files(self, directory: Path,
                                       options: Optional[ExportOptions] = None) -> Dict[str, Path]:
        """
        Export every journey of the realm to its own <name>.journey.json file

        A journey that fails to export is logged and skipped.
        """
        options = options or ExportOptions()
        federation = FederationCatalog(self.gateway)
        directory.mkdir(parents=True, exist_ok=True)
        files: Dict[str, Path] = {}

        for tree in await self.gateway.list_trees():
            tree_id = tree['_id']
            try:
                bundle = await self.exporter.export_tree(tree_id, options, federation)
            except JctlError as e:
                self.logger.error(f"Error exporting journey {tree_id}: {e}")
                continue
            path = directory / f"{tree_id}{JOURNEY_FILE_SUFFIX}"
            path.write_text(json.dumps(bundle.to_dict(), indent=2), encoding='utf-8')
            files[tree_id] = path

        self.logger.info(f"Exported {len(files)} journey(s) to {directory}")
        return files

    # ========== Import ==========

    async def _installed_journeys(self) -> List[str]:
        return installed_journey_names(await self.gateway.list_trees())

    async def _reconcile(self, name: str, bundle: SingleTreeExport, options: ImportOptions) -> ImportStatus:
        status = ImportStatus(journey=name)
        try:
            await self.reconciler.import_tree(bundle, options, status)
        except JourneyError as e:
            self.logger.error(str(e))
            status.fail(e)
        return status

    async def import_journey(self, bundle: SingleTreeExport, options: Optional[ImportOptions] = None) -> ImportStatus:
        """
        Import one journey

        Raises DependencyUnresolvedError when a journey it calls is neither part of
        the bundle nor installed on the target, and JourneyImportError on fatal failures.
        """
        options = options or ImportOptions()
        resolution = resolve_dependencies({bundle.tree_id: bundle}, await self._installed_journeys())
        resolution.raise_for_unresolved()
        return await self.reconciler.import_tree(bundle, options)

    async def import_first_journey(self, journeys: Mapping[str, SingleTreeExport],
                                   options: Optional[ImportOptions] = None) -> ImportStatus:
        """Import the first journey of a loaded document"""
        if not journeys:
            raise JourneyImportError("No journeys found in import data")
        return await self.import_journey(next(iter(journeys.values())), options)

    async def import_journeys(self, journeys: Mapping[str, SingleTreeExport],
                              options: Optional[ImportOptions] = None) -> BatchImportResult:
        """
        Import a batch in dependency order

        Unresolved journeys are reported and not installed; a journey whose import
        fails does not stop the rest of the batch.
        """
        options = options or ImportOptions()
        resolution = resolve_dependencies(journeys, await self._installed_journeys())
        result = BatchImportResult(order=resolution.order, unresolved=resolution.unresolved)

        for name in resolution.order:
            result.statuses[name] = await self._reconcile(name, journeys[name], options)

        self.logger.info(
            f"Imported {len(result.imported)} of {len(journeys)} journey(s)"
            + (f", {len(result.unresolved)} unresolved" if result.unresolved else "")
        )
        return result

    # ========== Delete ==========

    async def _delete_node(self, node_id: str, node_type: str, status: DeleteStatus,
                           missing_ok_message: Optional[str] = None) -> None:
        try:
            await self.gateway.delete_node(node_id, node_type)
        except GatewayError as e:
            if missing_ok_message and e.status_code == 500 and e.message == missing_ok_message:
                status.nodes[node_id] = ObjectStatus(kind=node_type, status="success")
                return
            self.logger.error(f"Error deleting node {node_id} ({node_type}): {e}")
            status.nodes[node_id] = ObjectStatus(kind=node_type, status="error", error=str(e))
            return
        except ServiceError as e:
            status.nodes[node_id] = ObjectStatus(kind=node_type, status="error", error=str(e))
            return
        status.nodes[node_id] = ObjectStatus(kind=node_type, status="success")

    async def delete_journey(self, journey_id: str, deep: bool = True) -> DeleteStatus:
        """
        Delete a journey; with deep also its nodes and the inner nodes of its containers

        Node failures are recorded in the returned status, never raised.
        """
        status = DeleteStatus()
        try:
            deleted = await self.gateway.delete_tree(journey_id)
        except ServiceError as e:
            self.logger.error(f"Error deleting journey {journey_id}: {e}")
            status.status = "error"
            status.error = str(e)
            return status
        self.logger.info(f"Deleted journey {journey_id}")

        if not deep:
            return status

        for node_id, info in (deleted.get('nodes') or {}).items():
            node_type = info.get('nodeType', '')
            if not is_container(node_type):
                await self._delete_node(node_id, node_type, status)
                continue
            try:
                container = await self.gateway.get_node(node_id, node_type)
            except ServiceError as e:
                self.logger.error(f"Error reading container node {node_id} ({node_type}) of {journey_id}: {e}")
                status.nodes[node_id] = ObjectStatus(kind=node_type, status="error", error=str(e))
                continue
            for inner in container.get('nodes') or []:
                await self._delete_node(inner['_id'], inner.get('nodeType', ''), status)
            await self._delete_node(node_id, node_type_of(container) or node_type, status,
                                    missing_ok_message=MISSING_CONTAINER_MESSAGE)

        if status.node_errors:
            self.logger.warning(f"{status.node_errors} node(s) of {journey_id} could not be deleted")
        return status

    async def delete_journeys(self, deep: bool = True) -> Dict[str, DeleteStatus]:
        """Delete every journey of the realm, one at a time"""
        statuses: Dict[str, DeleteStatus] = {}
        for journey_id in await self._installed_journeys():
            statuses[journey_id] = await self.delete_journey(journey_id, deep)
        return statuses

    # ========== Orphans ==========

    async def find_orphaned_nodes(self) -> OrphanReport:
        return await self.orphans.find_orphaned_nodes()

    async def remove_orphaned_nodes(self, orphans: List[Dict[str, Any]]) -> DeleteStatus:
        return await self.orphans.remove_orphaned_nodes(orphans)
