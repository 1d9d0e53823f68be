"""
Journey export tests - dependency collection and bundle assembly against the in-memory platform
"""

import json

import pytest

from jctl.core.exceptions import GatewayError, JourneyExportError, NotFoundError
from jctl.core.journey.encoding import encode, encode_base64url
from jctl.core.journey.journey_models import ExportOptions, PlatformContext
from jctl.services.journey.dependency_collector import parse_stage_theme
from jctl.services.journey.export_service import JourneyExportService, serialize_script


class TestStageTheme:
    """Theme references carried by a container node's stage field"""

    def test_json_stage(self):
        assert parse_stage_theme('{"themeId": "T9"}') == 'T9'

    def test_legacy_stage(self):
        assert parse_stage_theme('themeId=T1') == 'T1'

    def test_unparseable_stage_means_no_theme(self):
        assert parse_stage_theme('{"themeId": ') is None
        assert parse_stage_theme('somethingElse') is None
        assert parse_stage_theme('{"other": 1}') is None

    def test_missing_stage(self):
        assert parse_stage_theme(None) is None
        assert parse_stage_theme('') is None


class TestSerializeScript:

    def test_line_array(self):
        script = {'_id': 's', 'script': encode('a();\nb();')}
        assert serialize_script(script, True)['script'] == ['a();', 'b();']

    def test_json_string(self):
        script = {'_id': 's', 'script': encode('a();\nb();')}
        exported = serialize_script(script, False)
        assert exported['script'] == json.dumps('a();\nb();')
        assert json.loads(exported['script']) == 'a();\nb();'

    def test_source_is_not_modified(self):
        body = encode('a();')
        script = {'_id': 's', 'script': body}
        serialize_script(script, True)
        assert script['script'] == body


class TestExportTree:
    """Single journey export"""

    @pytest.mark.asyncio
    async def test_collects_nodes_and_inner_nodes(self, login_journey, context):
        """Every top-level node and every inner node of the page node is exported"""
        bundle = await JourneyExportService(login_journey, context).export_tree('Login')

        assert set(bundle.nodes) == {'page-1', 'sd-1', 'empty-sd', 'email-1', 'social-1', 'select-1', 'login-1'}
        assert set(bundle.inner_nodes) == {'un-1', 'pw-1', 'sd-inner'}
        assert bundle.tree['_id'] == 'Login'

    @pytest.mark.asyncio
    async def test_each_node_fetched_once(self, login_journey, context):
        await JourneyExportService(login_journey, context).export_tree('Login')

        fetched = [call[1] for call in login_journey.called('get_node')]
        assert len(fetched) == len(set(fetched)) == 10

    @pytest.mark.asyncio
    async def test_collects_scripts(self, login_journey, context):
        """Scripted nodes, inner scripted nodes and kept provider transforms; [Empty] is skipped"""
        bundle = await JourneyExportService(login_journey, context).export_tree('Login')

        assert set(bundle.scripts) == {'script-1', 'script-inner', 'script-social', 'script-transform'}
        assert bundle.scripts['script-inner']['script'] == ['outcome = "true";', 'logger.message("inner");']
        assert not [call for call in login_journey.called('get_script') if call[1] == '[Empty]']

    @pytest.mark.asyncio
    async def test_social_providers_filtered_by_select_idp(self, login_journey, context):
        bundle = await JourneyExportService(login_journey, context).export_tree('Login')

        assert set(bundle.social_identity_providers) == {'google'}
        assert len(login_journey.called('list_social_providers')) == 1

    @pytest.mark.asyncio
    async def test_all_social_providers_without_filter(self, login_journey, context):
        del login_journey.trees['Login']['nodes']['select-1']

        bundle = await JourneyExportService(login_journey, context).export_tree('Login')

        assert set(bundle.social_identity_providers) == {'google', 'github'}
        assert 'script-unused' in bundle.scripts

    @pytest.mark.asyncio
    async def test_email_templates(self, login_journey, context):
        bundle = await JourneyExportService(login_journey, context).export_tree('Login')

        assert list(bundle.email_templates) == ['welcome']
        assert bundle.email_templates['welcome']['displayName'] == 'Welcome'

    @pytest.mark.asyncio
    async def test_missing_email_template_is_excluded(self, login_journey, context):
        """Email template failures are logged and the export continues"""
        login_journey.email_templates.clear()

        bundle = await JourneyExportService(login_journey, context).export_tree('Login')

        assert bundle.email_templates == {}
        assert 'script-1' in bundle.scripts

    @pytest.mark.asyncio
    async def test_theme_inclusion(self, login_journey, context):
        """Themes referenced by a page stage or linked to the journey; others left out"""
        bundle = await JourneyExportService(login_journey, context).export_tree('Login')

        assert [theme['_id'] for theme in bundle.themes] == ['T1', 'T2']

    @pytest.mark.asyncio
    async def test_theme_referenced_by_name(self, login_journey, context):
        login_journey.nodes['page-1']['stage'] = json.dumps({'themeId': 'Other Theme'})

        bundle = await JourneyExportService(login_journey, context).export_tree('Login')

        assert [theme['_id'] for theme in bundle.themes] == ['T2', 'T3']

    @pytest.mark.asyncio
    async def test_theme_catalog_failure_yields_no_themes(self, login_journey, context):
        login_journey.fail('get_themes', GatewayError("Internal Server Error", 500))

        bundle = await JourneyExportService(login_journey, context).export_tree('Login')

        assert bundle.themes == []
        assert set(bundle.nodes)

    @pytest.mark.asyncio
    async def test_classic_deployment_skips_templates_and_themes(self, login_journey):
        classic = PlatformContext(platform_url="https://am.example.com", realm="/", deployment_type="classic")

        bundle = await JourneyExportService(login_journey, classic).export_tree('Login')

        assert bundle.email_templates == {}
        assert bundle.themes == []
        assert not login_journey.called('get_themes')

    @pytest.mark.asyncio
    async def test_without_deps(self, login_journey, context):
        """Only the flow, nodes and inner nodes"""
        bundle = await JourneyExportService(login_journey, context).export_tree(
            'Login', ExportOptions(deps=False)
        )

        assert set(bundle.inner_nodes) == {'un-1', 'pw-1', 'sd-inner'}
        assert bundle.scripts == {}
        assert bundle.email_templates == {}
        assert bundle.social_identity_providers == {}
        assert bundle.themes == []
        assert not login_journey.called('get_script')

    @pytest.mark.asyncio
    async def test_missing_script_is_fatal(self, login_journey, context):
        del login_journey.scripts['script-1']

        with pytest.raises(JourneyExportError):
            await JourneyExportService(login_journey, context).export_tree('Login')

    @pytest.mark.asyncio
    async def test_missing_node_is_fatal(self, login_journey, context):
        del login_journey.nodes['sd-1']

        with pytest.raises(JourneyExportError):
            await JourneyExportService(login_journey, context).export_tree('Login')

    @pytest.mark.asyncio
    async def test_missing_journey(self, gateway, context):
        with pytest.raises(NotFoundError, match="Journey 'Nope' not found"):
            await JourneyExportService(gateway, context).export_tree('Nope')

    @pytest.mark.asyncio
    async def test_meta_and_file_keys(self, login_journey, context):
        document = (await JourneyExportService(login_journey, context).export_tree('Login')).to_dict()

        assert set(document) == {
            'meta', 'innerNodes', 'nodes', 'scripts', 'emailTemplates', 'socialIdentityProviders',
            'themes', 'saml2Entities', 'circlesOfTrust', 'tree',
        }
        assert document['meta']['origin'] == 'https://tenant.example.com'
        assert document['meta']['originAmVersion'] == '7.5.0'
        assert document['meta']['exportTool'] == 'jctl'
        assert 'exportDate' in document['meta']

    @pytest.mark.asyncio
    async def test_platform_state_is_not_modified(self, login_journey, context):
        await JourneyExportService(login_journey, context).export_tree('Login')

        writes = [call for call in login_journey.calls if call[0].startswith(('put_', 'create_', 'update_', 'delete_'))]
        assert writes == []


class TestExportSaml2:
    """Federation dependencies of SAML2 nodes"""

    @pytest.fixture
    def federated(self, gateway):
        gateway.saml2[('hosted', 'sp-id')] = {'_id': 'sp-id', 'entityId': 'sp1', 'serviceProvider': {}}
        gateway.saml2[('remote', 'idp-id')] = {'_id': 'idp-id', 'entityId': 'idp-entity', 'identityProvider': {}}
        gateway.saml2[('remote', 'unused-id')] = {'_id': 'unused-id', 'entityId': 'unused'}
        gateway.saml2_metadata['idp-entity'] = '<EntityDescriptor entityID="idp-entity"/>'
        gateway.circles['cot1'] = {'_id': 'cot1', 'trustedProviders': ['sp1|saml2', 'idp-entity|saml2']}
        gateway.circles['cot2'] = {'_id': 'cot2', 'trustedProviders': ['unused|saml2']}
        gateway.add_node('saml-1', 'product-Saml2Node', metaAlias='/alpha/sp1', idpEntityId='idp-entity')
        gateway.add_tree('Federated', ['saml-1'])
        gateway.add_node('saml-2', 'product-Saml2Node', metaAlias='/alpha/sp1', idpEntityId='idp-entity')
        gateway.add_tree('Federated2', ['saml-2'])
        return gateway

    @pytest.mark.asyncio
    async def test_entities_and_circles(self, federated, context):
        bundle = await JourneyExportService(federated, context).export_tree('Federated')

        assert set(bundle.saml2_entities) == {'sp-id', 'idp-id'}
        assert set(bundle.circles_of_trust) == {'cot1'}
        assert bundle.saml2_entities['sp-id']['entityLocation'] == 'hosted'
        assert 'base64EntityXML' not in bundle.saml2_entities['sp-id']

    @pytest.mark.asyncio
    async def test_remote_entity_carries_metadata(self, federated, context):
        bundle = await JourneyExportService(federated, context).export_tree('Federated')

        remote = bundle.saml2_entities['idp-id']
        assert remote['entityLocation'] == 'remote'
        assert remote['base64EntityXML'] == encode_base64url('<EntityDescriptor entityID="idp-entity"/>')

    @pytest.mark.asyncio
    async def test_catalogs_fetched_once_per_operation(self, federated, context):
        document = await JourneyExportService(federated, context).export_trees()

        assert set(document.trees) == {'Federated', 'Federated2'}
        assert len(federated.called('list_saml2_providers')) == 1
        assert len(federated.called('list_circles_of_trust')) == 1

    @pytest.mark.asyncio
    async def test_saml2_inner_node(self, gateway, context):
        """A federation node inside a page node still contributes its entities"""
        gateway.saml2[('hosted', 'sp-id')] = {'_id': 'sp-id', 'entityId': 'sp1'}
        gateway.add_node('saml-inner', 'product-Saml2Node', metaAlias='/alpha/sp1')
        gateway.add_node('page', 'PageNode', nodes=[{'_id': 'saml-inner', 'nodeType': 'product-Saml2Node'}])
        gateway.add_tree('InnerFederation', ['page'])

        bundle = await JourneyExportService(gateway, context).export_tree('InnerFederation')

        assert set(bundle.saml2_entities) == {'sp-id'}


class TestExportTrees:
    """Multi-journey export"""

    @pytest.mark.asyncio
    async def test_single_meta(self, login_journey, context):
        login_journey.add_node('simple-1', 'UsernameCollectorNode')
        login_journey.add_tree('Simple', ['simple-1'])

        document = (await JourneyExportService(login_journey, context).export_trees()).to_dict()

        assert set(document) == {'meta', 'trees'}
        assert set(document['trees']) == {'Login', 'Simple'}
        assert all('meta' not in bundle for bundle in document['trees'].values())
        assert document['meta']['exportTool'] == 'jctl'

    @pytest.mark.asyncio
    async def test_failing_journey_is_left_out(self, login_journey, context):
        login_journey.add_node('broken-1', 'UsernameCollectorNode')
        login_journey.add_tree('Broken', ['broken-1'])
        del login_journey.nodes['broken-1']

        document = await JourneyExportService(login_journey, context).export_trees()

        assert set(document.trees) == {'Login'}
