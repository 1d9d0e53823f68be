"""
AM/IDM REST API access for journey configuration objects

AMAPIClient is a pre-configured HTTP client (realm path, bearer token, Accept-API-Version);
AMGateway builds the per-object-kind ConfigGateway operations on top of it.
"""

from typing import Any, Dict, List, Optional
from urllib.parse import quote
from loguru import logger

from ..http_client import HTTPClient
from ..exceptions import NotFoundError
from ..journey.journey_models import PlatformContext


TREE_API_VERSION = "protocol=2.1,resource=1.0"
SCRIPT_API_VERSION = "protocol=2.0,resource=1.0"
SAML2_API_VERSION = "protocol=2.1,resource=1.0"
COT_API_VERSION = "protocol=2.1,resource=1.0"
SOCIAL_API_VERSION = "protocol=2.1,resource=1.0"

TREES_PATH = "realm-config/authentication/authenticationtrees/trees"
NODES_PATH = "realm-config/authentication/authenticationtrees/nodes"
SAML2_PATH = "realm-config/saml2"
COT_PATH = "realm-config/federation/circlesoftrust"
SOCIAL_PATH = "realm-config/services/SocialIdentityProviders"
THEMEREALM_ID = "ui/themerealm"


def _segment(value: str) -> str:
    """Quote a single URL path segment"""
    return quote(value, safe='')


class AMAPIClient:
    """
    Low-level AM/IDM REST client - generic HTTP verbs with platform headers

    Does NOT know about resource kinds; AMGateway owns the paths.
    """

    def __init__(self, context: PlatformContext, http_client: Optional[HTTPClient] = None,
                 api_version: str = "resource=1.1"):
        self.context = context
        self.default_api_version = api_version
        self.http_client = http_client or HTTPClient()
        self.logger = logger

    def _get_headers(self, api_version: str | None = None) -> dict:
        headers = {
            "Accept-API-Version": api_version or self.default_api_version,
            "Content-Type": "application/json"
        }
        if self.context.access_token:
            headers["Authorization"] = f"Bearer {self.context.access_token}"
        return headers

    def am_url(self, path: str) -> str:
        """Realm-scoped AM JSON endpoint, e.g. {platform}/am/json/realms/root/realms/alpha/{path}"""
        return f"{self.context.platform_url}/am/json/{self.context.realm_path}/{path}"

    def idm_url(self, path: str) -> str:
        return f"{self.context.platform_url}/openidm/{path}"

    async def get(self, url: str, params: dict | None = None, api_version: str | None = None) -> Any:
        response = await self.http_client.get_response(url, params=params, headers=self._get_headers(api_version))
        response.raise_for_status()
        return response.json()

    async def get_text(self, url: str, params: dict | None = None) -> str:
        response = await self.http_client.get_response(url, params=params, headers=self._get_headers())
        response.raise_for_status()
        return response.text

    async def post(self, url: str, payload: Any = None, params: dict | None = None,
                   api_version: str | None = None) -> Any:
        response = await self.http_client.post_response(
            url,
            json=payload if payload is not None else {},
            params=params,
            headers=self._get_headers(api_version)
        )
        response.raise_for_status()
        return response.json()

    async def put(self, url: str, payload: Any, api_version: str | None = None) -> Any:
        response = await self.http_client.put_response(url, json=payload, headers=self._get_headers(api_version))
        response.raise_for_status()
        return response.json()

    async def delete(self, url: str, api_version: str | None = None) -> Any:
        response = await self.http_client.delete_response(url, headers=self._get_headers(api_version))
        response.raise_for_status()
        return response.json()


class AMGateway:
    """ConfigGateway implementation backed by the AM and IDM REST APIs"""

    def __init__(self, context: PlatformContext, client: Optional[AMAPIClient] = None):
        self.context = context
        self.client = client or AMAPIClient(context)
        self.logger = logger

    # ========== Trees ==========

    async def get_tree(self, tree_id: str) -> Dict[str, Any]:
        url = self.client.am_url(f"{TREES_PATH}/{_segment(tree_id)}")
        try:
            return await self.client.get(url, api_version=TREE_API_VERSION)
        except NotFoundError as e:
            raise NotFoundError(f"Journey '{tree_id}' not found", e.status_code, e.detail)

    async def list_trees(self) -> List[Dict[str, Any]]:
        result = await self.client.get(
            self.client.am_url(TREES_PATH), params={"_queryFilter": "true"}, api_version=TREE_API_VERSION
        )
        return result.get('result', [])

    async def put_tree(self, tree_id: str, data: Dict[str, Any]) -> Dict[str, Any]:
        url = self.client.am_url(f"{TREES_PATH}/{_segment(tree_id)}")
        return await self.client.put(url, data, api_version=TREE_API_VERSION)

    async def delete_tree(self, tree_id: str) -> Dict[str, Any]:
        url = self.client.am_url(f"{TREES_PATH}/{_segment(tree_id)}")
        return await self.client.delete(url, api_version=TREE_API_VERSION)

    # ========== Nodes ==========

    def _node_url(self, node_id: str, node_type: str) -> str:
        return self.client.am_url(f"{NODES_PATH}/{_segment(node_type)}/{_segment(node_id)}")

    async def get_node(self, node_id: str, node_type: str) -> Dict[str, Any]:
        return await self.client.get(self._node_url(node_id, node_type), api_version=TREE_API_VERSION)

    async def put_node(self, node_id: str, node_type: str, data: Dict[str, Any]) -> Dict[str, Any]:
        return await self.client.put(self._node_url(node_id, node_type), data, api_version=TREE_API_VERSION)

    async def delete_node(self, node_id: str, node_type: str) -> Dict[str, Any]:
        return await self.client.delete(self._node_url(node_id, node_type), api_version=TREE_API_VERSION)

    async def list_node_types(self) -> List[Dict[str, Any]]:
        result = await self.client.post(
            self.client.am_url(NODES_PATH), params={"_action": "getAllTypes"}, api_version=TREE_API_VERSION
        )
        return result.get('result', [])

    async def list_nodes_by_type(self, node_type: str) -> List[Dict[str, Any]]:
        result = await self.client.get(
            self.client.am_url(f"{NODES_PATH}/{_segment(node_type)}"),
            params={"_queryFilter": "true"},
            api_version=TREE_API_VERSION
        )
        return result.get('result', [])

    # ========== Scripts ==========

    async def get_script(self, script_id: str) -> Dict[str, Any]:
        url = self.client.am_url(f"scripts/{_segment(script_id)}")
        return await self.client.get(url, api_version=SCRIPT_API_VERSION)

    async def put_script(self, script_id: str, data: Dict[str, Any]) -> Dict[str, Any]:
        url = self.client.am_url(f"scripts/{_segment(script_id)}")
        return await self.client.put(url, data, api_version=SCRIPT_API_VERSION)

    # ========== Email templates (IDM config) ==========

    async def get_email_template(self, template_id: str) -> Dict[str, Any]:
        return await self.client.get(self.client.idm_url(f"config/emailTemplate/{_segment(template_id)}"))

    async def put_email_template(self, template_id: str, data: Dict[str, Any]) -> Dict[str, Any]:
        return await self.client.put(self.client.idm_url(f"config/emailTemplate/{_segment(template_id)}"), data)

    # ========== SAML2 entity providers ==========

    async def list_saml2_providers(self) -> List[Dict[str, Any]]:
        result = await self.client.get(
            self.client.am_url(SAML2_PATH), params={"_queryFilter": "true"}, api_version=SAML2_API_VERSION
        )
        return result.get('result', [])

    async def get_saml2_provider(self, location: str, provider_id: str) -> Dict[str, Any]:
        url = self.client.am_url(f"{SAML2_PATH}/{_segment(location)}/{_segment(provider_id)}")
        return await self.client.get(url, api_version=SAML2_API_VERSION)

    async def get_saml2_metadata(self, entity_id: str) -> str:
        realm = '/' + '/'.join(self.context.realm_segments)
        url = f"{self.context.platform_url}/am/saml2/jsp/exportmetadata.jsp"
        return await self.client.get_text(url, params={"entityid": entity_id, "realm": realm})

    async def find_saml2_providers(self, query_filter: str) -> List[Dict[str, Any]]:
        result = await self.client.get(
            self.client.am_url(SAML2_PATH),
            params={"_queryFilter": query_filter, "_fields": "location"},
            api_version=SAML2_API_VERSION
        )
        return result.get('result', [])

    async def create_saml2_provider(self, location: str, data: Dict[str, Any],
                                    metadata: Optional[str] = None) -> Dict[str, Any]:
        if location == 'remote':
            url = self.client.am_url(f"{SAML2_PATH}/remote")
            payload = {**data, "standardMetadata": metadata}
            return await self.client.post(url, payload, params={"_action": "importEntity"},
                                          api_version=SAML2_API_VERSION)
        url = self.client.am_url(f"{SAML2_PATH}/{_segment(location)}")
        return await self.client.post(url, data, params={"_action": "create"}, api_version=SAML2_API_VERSION)

    async def update_saml2_provider(self, location: str, data: Dict[str, Any]) -> Dict[str, Any]:
        url = self.client.am_url(f"{SAML2_PATH}/{_segment(location)}/{_segment(data['_id'])}")
        return await self.client.put(url, data, api_version=SAML2_API_VERSION)

    # ========== Circles of trust ==========

    async def list_circles_of_trust(self) -> List[Dict[str, Any]]:
        result = await self.client.get(
            self.client.am_url(COT_PATH), params={"_queryFilter": "true"}, api_version=COT_API_VERSION
        )
        return result.get('result', [])

    async def create_circle_of_trust(self, data: Dict[str, Any]) -> Dict[str, Any]:
        return await self.client.post(
            self.client.am_url(COT_PATH), data, params={"_action": "create"}, api_version=COT_API_VERSION
        )

    async def update_circle_of_trust(self, cot_id: str, data: Dict[str, Any]) -> Dict[str, Any]:
        url = self.client.am_url(f"{COT_PATH}/{_segment(cot_id)}")
        return await self.client.put(url, data, api_version=COT_API_VERSION)

    # ========== Social identity providers ==========

    async def list_social_providers(self) -> List[Dict[str, Any]]:
        result = await self.client.post(
            self.client.am_url(SOCIAL_PATH), params={"_action": "nextdescendents"}, api_version=SOCIAL_API_VERSION
        )
        return result.get('result', [])

    async def put_social_provider(self, provider_type: str, provider_id: str,
                                  data: Dict[str, Any]) -> Dict[str, Any]:
        url = self.client.am_url(f"{SOCIAL_PATH}/{_segment(provider_type)}/{_segment(provider_id)}")
        return await self.client.put(url, data, api_version=SOCIAL_API_VERSION)

    # ========== Themes ==========

    async def _get_themerealm(self) -> Dict[str, Any]:
        return await self.client.get(self.client.idm_url(f"config/{THEMEREALM_ID}"))

    async def get_themes(self) -> List[Dict[str, Any]]:
        themerealm = await self._get_themerealm()
        return themerealm.get('realm', {}).get(self.context.realm_name, [])

    async def put_themes(self, themes: Dict[str, Dict[str, Any]]) -> List[Dict[str, Any]]:
        """Upsert themes by _id into the realm's composite theme record"""
        themerealm = await self._get_themerealm()
        realm_themes = themerealm.setdefault('realm', {}).setdefault(self.context.realm_name, [])

        pending = dict(themes)
        for index, existing in enumerate(realm_themes):
            if existing.get('_id') in pending:
                realm_themes[index] = pending.pop(existing['_id'])
        realm_themes.extend(pending.values())

        updated = await self.client.put(self.client.idm_url(f"config/{THEMEREALM_ID}"), themerealm)
        return updated.get('realm', {}).get(self.context.realm_name, [])
