"""
Shared fixtures for journey tests
FakeGateway keeps platform objects in memory and raises the same typed errors as AMGateway
"""

import copy
import re
from typing import Any, Dict, List, Optional

import pytest

from jctl.core.exceptions import ConflictError, GatewayError, NotFoundError
from jctl.core.journey.encoding import encode
from jctl.core.journey.journey_models import PlatformContext
from jctl.core.journey.node_types import node_type_of


class FakeGateway:
    """
    In-memory ConfigGateway

    Queue failures per method with fail(method, *errors), None letting that call through;
    every call is recorded in calls.
    """

    def __init__(self):
        self.trees: Dict[str, Dict[str, Any]] = {}
        self.nodes: Dict[str, Dict[str, Any]] = {}
        self.scripts: Dict[str, Dict[str, Any]] = {}
        self.email_templates: Dict[str, Dict[str, Any]] = {}
        self.saml2: Dict[tuple, Dict[str, Any]] = {}
        self.saml2_metadata: Dict[str, str] = {}
        self.circles: Dict[str, Dict[str, Any]] = {}
        self.social: Dict[str, Dict[str, Any]] = {}
        self.themes: List[Dict[str, Any]] = []
        self.calls: List[tuple] = []
        self.failures: Dict[str, List[Exception]] = {}
        self.failing_node_types: set = set()

    # ========== Test helpers ==========

    def fail(self, method: str, *errors: Exception) -> None:
        self.failures.setdefault(method, []).extend(errors)

    def _record(self, method: str, *args) -> None:
        self.calls.append((method, *args))
        queued = self.failures.get(method)
        if queued:
            error = queued.pop(0)
            if error is not None:
                raise error

    def called(self, method: str) -> List[tuple]:
        return [call for call in self.calls if call[0] == method]

    def add_node(self, node_id: str, node_type: str, **props) -> Dict[str, Any]:
        node = {'_id': node_id, '_type': {'_id': node_type, 'name': node_type}, **props}
        self.nodes[node_id] = node
        return node

    def add_tree(self, tree_id: str, node_ids: List[str], **props) -> Dict[str, Any]:
        tree = {
            '_id': tree_id,
            'entryNodeId': node_ids[0] if node_ids else None,
            'nodes': {
                node_id: {
                    'nodeType': node_type_of(self.nodes[node_id]),
                    'displayName': node_id,
                    'connections': {},
                }
                for node_id in node_ids
            },
            **props,
        }
        self.trees[tree_id] = tree
        return tree

    # ========== Trees ==========

    async def get_tree(self, tree_id: str) -> Dict[str, Any]:
        self._record('get_tree', tree_id)
        if tree_id not in self.trees:
            raise NotFoundError(f"Journey '{tree_id}' not found", 404)
        return copy.deepcopy(self.trees[tree_id])

    async def list_trees(self) -> List[Dict[str, Any]]:
        self._record('list_trees')
        return copy.deepcopy(list(self.trees.values()))

    async def put_tree(self, tree_id: str, data: Dict[str, Any]) -> Dict[str, Any]:
        self._record('put_tree', tree_id, copy.deepcopy(data))
        self.trees[tree_id] = copy.deepcopy(data)
        return copy.deepcopy(data)

    async def delete_tree(self, tree_id: str) -> Dict[str, Any]:
        self._record('delete_tree', tree_id)
        if tree_id not in self.trees:
            raise NotFoundError(f"Journey '{tree_id}' not found", 404)
        return self.trees.pop(tree_id)

    # ========== Nodes ==========

    async def get_node(self, node_id: str, node_type: str) -> Dict[str, Any]:
        self._record('get_node', node_id, node_type)
        node = self.nodes.get(node_id)
        if node is None or node_type_of(node) != node_type:
            raise NotFoundError("Not Found", 404)
        return copy.deepcopy(node)

    async def put_node(self, node_id: str, node_type: str, data: Dict[str, Any]) -> Dict[str, Any]:
        self._record('put_node', node_id, node_type, copy.deepcopy(data))
        node = copy.deepcopy(data)
        node['_id'] = node_id
        node.setdefault('_type', {'_id': node_type})
        self.nodes[node_id] = node
        return copy.deepcopy(node)

    async def delete_node(self, node_id: str, node_type: str) -> Dict[str, Any]:
        self._record('delete_node', node_id, node_type)
        if node_id not in self.nodes:
            raise NotFoundError("Not Found", 404)
        return self.nodes.pop(node_id)

    async def list_node_types(self) -> List[Dict[str, Any]]:
        self._record('list_node_types')
        types = {node_type_of(node) for node in self.nodes.values()} | self.failing_node_types
        return [{'_id': node_type} for node_type in sorted(types)]

    async def list_nodes_by_type(self, node_type: str) -> List[Dict[str, Any]]:
        self._record('list_nodes_by_type', node_type)
        if node_type in self.failing_node_types:
            raise GatewayError("Forbidden", 403)
        return [copy.deepcopy(n) for n in self.nodes.values() if node_type_of(n) == node_type]

    # ========== Scripts ==========

    async def get_script(self, script_id: str) -> Dict[str, Any]:
        self._record('get_script', script_id)
        if script_id not in self.scripts:
            raise NotFoundError("Not Found", 404)
        return copy.deepcopy(self.scripts[script_id])

    async def put_script(self, script_id: str, data: Dict[str, Any]) -> Dict[str, Any]:
        self._record('put_script', script_id, copy.deepcopy(data))
        self.scripts[script_id] = copy.deepcopy(data)
        return copy.deepcopy(data)

    # ========== Email templates ==========

    async def get_email_template(self, template_id: str) -> Dict[str, Any]:
        self._record('get_email_template', template_id)
        if template_id not in self.email_templates:
            raise NotFoundError("Not Found", 404)
        return copy.deepcopy(self.email_templates[template_id])

    async def put_email_template(self, template_id: str, data: Dict[str, Any]) -> Dict[str, Any]:
        self._record('put_email_template', template_id, copy.deepcopy(data))
        self.email_templates[template_id] = copy.deepcopy(data)
        return copy.deepcopy(data)

    # ========== SAML2 ==========

    async def list_saml2_providers(self) -> List[Dict[str, Any]]:
        self._record('list_saml2_providers')
        return [
            {'_id': entity['_id'], 'entityId': entity['entityId'], 'location': location}
            for (location, _), entity in self.saml2.items()
        ]

    async def get_saml2_provider(self, location: str, provider_id: str) -> Dict[str, Any]:
        self._record('get_saml2_provider', location, provider_id)
        if (location, provider_id) not in self.saml2:
            raise NotFoundError("Not Found", 404)
        return copy.deepcopy(self.saml2[(location, provider_id)])

    async def get_saml2_metadata(self, entity_id: str) -> str:
        self._record('get_saml2_metadata', entity_id)
        return self.saml2_metadata.get(entity_id, f'<EntityDescriptor entityID="{entity_id}"/>')

    async def find_saml2_providers(self, query_filter: str) -> List[Dict[str, Any]]:
        self._record('find_saml2_providers', query_filter)
        match = re.match(r"entityId eq '(.*)'", query_filter)
        entity_id = match.group(1) if match else None
        return [
            {'_id': entity['_id'], 'location': location}
            for (location, _), entity in self.saml2.items()
            if entity['entityId'] == entity_id
        ]

    async def create_saml2_provider(self, location: str, data: Dict[str, Any],
                                    metadata: Optional[str] = None) -> Dict[str, Any]:
        self._record('create_saml2_provider', location, copy.deepcopy(data), metadata)
        if (location, data['_id']) in self.saml2:
            raise ConflictError("Entity already exists", 409)
        self.saml2[(location, data['_id'])] = copy.deepcopy(data)
        if metadata:
            self.saml2_metadata[data['entityId']] = metadata
        return copy.deepcopy(data)

    async def update_saml2_provider(self, location: str, data: Dict[str, Any]) -> Dict[str, Any]:
        self._record('update_saml2_provider', location, copy.deepcopy(data))
        self.saml2[(location, data['_id'])] = copy.deepcopy(data)
        return copy.deepcopy(data)

    # ========== Circles of trust ==========

    async def list_circles_of_trust(self) -> List[Dict[str, Any]]:
        self._record('list_circles_of_trust')
        return copy.deepcopy(list(self.circles.values()))

    async def create_circle_of_trust(self, data: Dict[str, Any]) -> Dict[str, Any]:
        self._record('create_circle_of_trust', copy.deepcopy(data))
        if data['_id'] in self.circles:
            raise ConflictError("Circle of trust already exists", 409)
        self.circles[data['_id']] = copy.deepcopy(data)
        return copy.deepcopy(data)

    async def update_circle_of_trust(self, cot_id: str, data: Dict[str, Any]) -> Dict[str, Any]:
        self._record('update_circle_of_trust', cot_id, copy.deepcopy(data))
        self.circles[cot_id] = copy.deepcopy(data)
        return copy.deepcopy(data)

    # ========== Social identity providers ==========

    async def list_social_providers(self) -> List[Dict[str, Any]]:
        self._record('list_social_providers')
        return copy.deepcopy(list(self.social.values()))

    async def put_social_provider(self, provider_type: str, provider_id: str,
                                  data: Dict[str, Any]) -> Dict[str, Any]:
        self._record('put_social_provider', provider_type, provider_id, copy.deepcopy(data))
        self.social[provider_id] = copy.deepcopy(data)
        return copy.deepcopy(data)

    # ========== Themes ==========

    async def get_themes(self) -> List[Dict[str, Any]]:
        self._record('get_themes')
        return copy.deepcopy(self.themes)

    async def put_themes(self, themes: Dict[str, Dict[str, Any]]) -> List[Dict[str, Any]]:
        self._record('put_themes', copy.deepcopy(themes))
        pending = copy.deepcopy(themes)
        for index, existing in enumerate(self.themes):
            if existing['_id'] in pending:
                self.themes[index] = pending.pop(existing['_id'])
        self.themes.extend(pending.values())
        return copy.deepcopy(self.themes)


@pytest.fixture
def gateway():
    """Empty in-memory platform"""
    return FakeGateway()


@pytest.fixture
def context():
    """Cloud tenant, alpha realm"""
    return PlatformContext(
        platform_url="https://tenant.example.com/",
        realm="alpha",
        deployment_type="cloud",
        access_token="test-token",
        am_version="7.5.0",
    )


@pytest.fixture
def target_gateway():
    """Second, empty platform to import into"""
    return FakeGateway()


@pytest.fixture
def login_journey(gateway):
    """
    'Login' journey: a page node with three inner nodes, scripted, email, social and
    IdP-selection nodes, and the scripts, template, providers and themes they use
    """
    gateway.add_node('un-1', 'ValidatedUsernameNode')
    gateway.add_node('pw-1', 'ValidatedPasswordNode')
    gateway.add_node('sd-inner', 'ScriptedDecisionNode', script='script-inner', outcomes=['true'])
    gateway.add_node(
        'page-1', 'PageNode',
        stage='themeId=T1',
        nodes=[
            {'_id': 'un-1', 'nodeType': 'ValidatedUsernameNode', 'displayName': 'Username'},
            {'_id': 'pw-1', 'nodeType': 'ValidatedPasswordNode', 'displayName': 'Password'},
            {'_id': 'sd-inner', 'nodeType': 'ScriptedDecisionNode', 'displayName': 'Check'},
        ],
    )
    gateway.add_node('sd-1', 'ScriptedDecisionNode', script='script-1', outcomes=['true', 'false'])
    gateway.add_node('empty-sd', 'ScriptedDecisionNode', script='[Empty]')
    gateway.add_node('email-1', 'EmailSuspendNode', emailTemplateName='welcome')
    gateway.add_node('social-1', 'SocialProviderHandlerNode', script='script-social')
    gateway.add_node('select-1', 'SelectIdPNode', filteredProviders=['google'])
    gateway.add_node('login-1', 'IdentifyExistingUserNode', identityResource='managed/user')
    gateway.add_tree(
        'Login',
        ['page-1', 'sd-1', 'empty-sd', 'email-1', 'social-1', 'select-1', 'login-1'],
        identityResource='managed/user',
        uiConfig={'categories': '[]'},
        enabled=True,
        _rev='12345',
    )

    for script_id, body in {
        'script-1': 'outcome = "true";',
        'script-inner': 'outcome = "true";\nlogger.message("inner");',
        'script-social': 'var x = 1;',
        'script-transform': 'return normalizedProfile;',
        'script-unused': 'unused();',
    }.items():
        gateway.scripts[script_id] = {
            '_id': script_id, 'name': f"{script_id} name", 'description': f"{script_id} description",
            'script': encode(body), 'language': 'JAVASCRIPT',
        }

    gateway.email_templates['welcome'] = {
        '_id': 'emailTemplate/welcome', 'displayName': 'Welcome', 'subject': {'en': 'Welcome'},
    }
    gateway.social['google'] = {
        '_id': 'google', '_type': {'_id': 'googleConfig'}, 'transform': 'script-transform',
        'redirectAfterFormPostURI': 'https://tenant.example.com/login',
    }
    gateway.social['github'] = {
        '_id': 'github', '_type': {'_id': 'oauth2Config'}, 'transform': 'script-unused',
    }
    gateway.themes = [
        {'_id': 'T1', 'name': 'Starter Theme', 'linkedTrees': []},
        {'_id': 'T2', 'name': 'Linked Theme', 'linkedTrees': ['Login']},
        {'_id': 'T3', 'name': 'Other Theme', 'linkedTrees': ['Registration']},
    ]
    return gateway
