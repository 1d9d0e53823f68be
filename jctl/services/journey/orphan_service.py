"""
Orphan Detection - nodes that exist on the platform but no journey reaches
"""

from typing import Any, Dict, List, Set
from loguru import logger

from ...core.async_utils import gather_settled
from ...core.exceptions import ServiceError
from ...core.journey.gateway import ConfigGateway
from ...core.journey.journey_models import DeleteStatus, ObjectStatus, OrphanReport
from ...core.journey.node_types import is_container, node_type_of


class OrphanService:
    """Find and remove nodes not referenced by any journey"""

    def __init__(self, gateway: ConfigGateway):
        self.gateway = gateway
        self.logger = logger

    async def _all_nodes(self, report: OrphanReport) -> List[Dict[str, Any]]:
        all_nodes: List[Dict[str, Any]] = []
        for node_type in await self.gateway.list_node_types():
            type_id = node_type['_id']
            try:
                all_nodes.extend(await self.gateway.list_nodes_by_type(type_id))
            except ServiceError as e:
                self.logger.warning(f"Skipped node type {type_id}: {e}")
                report.skipped_types.append(type_id)
        return all_nodes

    async def _active_node_ids(self) -> Set[str]:
        active: Set[str] = set()
        containers = []
        for journey in await self.gateway.list_trees():
            for node_id, info in (journey.get('nodes') or {}).items():
                active.add(node_id)
                if is_container(info.get('nodeType', '')):
                    containers.append((node_id, info['nodeType']))

        # a container's inner nodes only appear in the container itself
        fetched, failures = await gather_settled(
            self.gateway.get_node(node_id, node_type) for node_id, node_type in containers
        )
        if failures:
            raise failures[0]
        for container in fetched:
            active.update(ref['_id'] for ref in container.get('nodes') or [] if ref.get('_id'))
        return active

    async def find_orphaned_nodes(self) -> OrphanReport:
        """
        All platform nodes minus those reachable from a journey

        Node types whose listing fails are skipped; they are listed in
        report.skipped_types because orphans of those types go unreported.
        """
        report = OrphanReport()
        all_nodes = await self._all_nodes(report)
        active = await self._active_node_ids()

        report.total_nodes = len(all_nodes)
        report.active_nodes = len(active)
        report.orphans = [node for node in all_nodes if node.get('_id') not in active]

        self.logger.info(
            f"{report.total_nodes} total nodes, {report.active_nodes} active nodes, "
            f"{len(report.orphans)} orphaned nodes"
        )
        if report.skipped_types:
            self.logger.warning(f"Skipped type(s): {', '.join(report.skipped_types)}")
        return report

    async def remove_orphaned_nodes(self, orphans: List[Dict[str, Any]]) -> DeleteStatus:
        """Delete each orphan independently; failures are recorded per node"""
        status = DeleteStatus()
        for node in orphans:
            node_id = node['_id']
            node_type = node_type_of(node)
            try:
                await self.gateway.delete_node(node_id, node_type)
            except ServiceError as e:
                self.logger.error(f"Error deleting orphaned node {node_id} ({node_type}): {e}")
                status.nodes[node_id] = ObjectStatus(kind=node_type, status="error", error=str(e))
                continue
            status.nodes[node_id] = ObjectStatus(kind=node_type, status="success")

        if status.node_errors:
            status.status = "error"
            status.error = f"Failed to delete {status.node_errors} of {len(orphans)} orphaned node(s)"
        return status
