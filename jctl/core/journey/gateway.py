"""
Configuration object gateway interface
Every journey operation talks to the platform only through this protocol
"""

from typing import Any, Dict, List, Optional, Protocol


class ConfigGateway(Protocol):
    """
    Async get/list/put/delete per configuration object kind

    Implementations raise NotFoundError, ValidationError, ConflictError or
    GatewayError (all from jctl.core.exceptions) on failure.
    """

    # ========== Trees (journeys) ==========

    async def get_tree(self, tree_id: str) -> Dict[str, Any]: ...

    async def list_trees(self) -> List[Dict[str, Any]]: ...

    async def put_tree(self, tree_id: str, data: Dict[str, Any]) -> Dict[str, Any]: ...

    async def delete_tree(self, tree_id: str) -> Dict[str, Any]: ...

    # ========== Nodes ==========

    async def get_node(self, node_id: str, node_type: str) -> Dict[str, Any]: ...

    async def put_node(self, node_id: str, node_type: str, data: Dict[str, Any]) -> Dict[str, Any]: ...

    async def delete_node(self, node_id: str, node_type: str) -> Dict[str, Any]: ...

    async def list_node_types(self) -> List[Dict[str, Any]]: ...

    async def list_nodes_by_type(self, node_type: str) -> List[Dict[str, Any]]: ...

    # ========== Scripts ==========

    async def get_script(self, script_id: str) -> Dict[str, Any]: ...

    async def put_script(self, script_id: str, data: Dict[str, Any]) -> Dict[str, Any]: ...

    # ========== Email templates ==========

    async def get_email_template(self, template_id: str) -> Dict[str, Any]: ...

    async def put_email_template(self, template_id: str, data: Dict[str, Any]) -> Dict[str, Any]: ...

    # ========== SAML2 entity providers ==========

    async def list_saml2_providers(self) -> List[Dict[str, Any]]: ...

    async def get_saml2_provider(self, location: str, provider_id: str) -> Dict[str, Any]: ...

    async def get_saml2_metadata(self, entity_id: str) -> str: ...

    async def find_saml2_providers(self, query_filter: str) -> List[Dict[str, Any]]: ...

    async def create_saml2_provider(self, location: str, data: Dict[str, Any],
                                    metadata: Optional[str] = None) -> Dict[str, Any]: ...

    async def update_saml2_provider(self, location: str, data: Dict[str, Any]) -> Dict[str, Any]: ...

    # ========== Circles of trust ==========

    async def list_circles_of_trust(self) -> List[Dict[str, Any]]: ...

    async def create_circle_of_trust(self, data: Dict[str, Any]) -> Dict[str, Any]: ...

    async def update_circle_of_trust(self, cot_id: str, data: Dict[str, Any]) -> Dict[str, Any]: ...

    # ========== Social identity providers ==========

    async def list_social_providers(self) -> List[Dict[str, Any]]: ...

    async def put_social_provider(self, provider_type: str, provider_id: str,
                                  data: Dict[str, Any]) -> Dict[str, Any]: ...

    # ========== Themes (one composite record per realm) ==========

    async def get_themes(self) -> List[Dict[str, Any]]: ...

    async def put_themes(self, themes: Dict[str, Dict[str, Any]]) -> List[Dict[str, Any]]: ...
