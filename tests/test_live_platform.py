"""
Live platform tests - read-only checks against a real tenant

Run with: pytest --integration --conn <profile>
The profile needs an access token (stored, or JCTL_ACCESS_TOKEN).
"""

import pytest

from jctl.core.conn.am_api import AMGateway
from jctl.services.conn.conn_service import ConnectionService
from jctl.services.journey.journey_service import JourneyService, describe_tree, load_journeys


@pytest.fixture
def live_service(conn_name):
    context = ConnectionService().get_context(conn_name)
    return JourneyService(AMGateway(context), context)


@pytest.mark.integration
class TestLivePlatform:

    @pytest.mark.asyncio
    async def test_export_all_journeys(self, live_service):
        """Every exported journey reloads from its own document"""
        document = (await live_service.export_journeys()).to_dict()

        journeys = load_journeys(document)
        assert set(journeys) == set(document['trees'])
        for bundle in journeys.values():
            assert describe_tree(bundle)['treeName'] == bundle.tree_id

    @pytest.mark.asyncio
    async def test_orphan_scan(self, live_service):
        report = await live_service.find_orphaned_nodes()

        assert report.active_nodes >= 0
        assert len(report.orphans) <= report.total_nodes
