"""
Import Reconciler - installs one journey bundle against a target realm

Strict phase order: scripts, email templates, themes, social identity providers,
SAML2 entities, circles of trust, inner nodes, nodes, journey flow.
Scripts, nodes and the flow are fatal on failure (JourneyImportError); every other
object failure is recorded in the ImportStatus and the import continues.
"""

import copy
import json
import uuid
from typing import Any, Callable, Dict, Optional
from loguru import logger

from ...core.exceptions import (
    ConflictError,
    GatewayError,
    JourneyImportError,
    MissingScriptError,
    ServiceError,
    ValidationError,
)
from ...core.journey.encoding import (
    convert_text_array_to_base64,
    convert_text_array_to_base64url,
    encode,
    is_base64_encoded,
    replace_all,
)
from ...core.journey.gateway import ConfigGateway
from ...core.journey.journey_models import (
    ImportOptions,
    ImportStatus,
    PlatformContext,
    SingleTreeExport,
)
from ...core.journey.node_types import is_container, node_type_of


# Platform error messages that select a repair path
MISSING_SCRIPT_MESSAGE = 'Data validation failed for the attribute, Script'
INVALID_ATTRIBUTE_MESSAGE = 'Invalid attribute specified.'
SOCIAL_REDIRECT_MESSAGE = (
    'Unable to update SMS config: Data validation failed for the attribute, Redirect after form post URL'
)

GENERIC_IDENTITY_RESOURCE_SUFFIX = 'user'


def normalize_script_body(body: Any) -> str:
    """
    Script body in the single base64 form the platform expects

    Accepts a line array, a JSON-encoded text string or base64 (returned unchanged).
    """
    if isinstance(body, list):
        return convert_text_array_to_base64(body)
    if isinstance(body, str) and not is_base64_encoded(body):
        try:
            text = json.loads(body)
        except json.JSONDecodeError as e:
            raise ValueError(f"Script body is neither base64, a line array nor JSON text: {e}")
        if not isinstance(text, str):
            raise ValueError("Script body JSON must be a string")
        return encode(text)
    return body


def remap_ids(obj: Dict[str, Any], id_map: Dict[str, str]) -> Dict[str, Any]:
    """Replace every occurrence of each old id anywhere in the serialized object"""
    text = json.dumps(obj)
    for old_id, new_id in id_map.items():
        text = replace_all(text, old_id, new_id)
    return json.loads(text)


class ImportReconciler:
    """Install a single journey bundle, dependencies first and flow graph last"""

    def __init__(self, gateway: ConfigGateway, context: PlatformContext,
                 id_factory: Optional[Callable[[], str]] = None):
        self.gateway = gateway
        self.context = context
        self.id_factory = id_factory or (lambda: str(uuid.uuid4()))
        self.logger = logger

    async def import_tree(self, bundle: SingleTreeExport, options: Optional[ImportOptions] = None,
                          status: Optional[ImportStatus] = None) -> ImportStatus:
        """
        Import a journey bundle

        Non-fatal failures are recorded in status (created when not given); fatal
        failures raise JourneyImportError after earlier phases have been applied.
        The caller's bundle is never modified.
        """
        options = options or ImportOptions()
        bundle = bundle.model_copy(deep=True)
        tree_id = bundle.tree_id
        status = status or ImportStatus(journey=tree_id)
        self.logger.info(f"Importing journey {tree_id}")

        if options.deps:
            await self._import_scripts(bundle, status)
            await self._import_email_templates(bundle, status)
            await self._import_themes(bundle, status)
            await self._import_social_providers(bundle, status)
            await self._import_saml2_entities(bundle, status)
            await self._import_circles_of_trust(bundle, status)

        journey_identity_resource = bundle.tree.get('identityResource')
        await self._import_nodes(bundle.inner_nodes, 'inner node', bundle, journey_identity_resource, options, status)
        await self._import_nodes(bundle.nodes, 'node', bundle, journey_identity_resource, options, status)
        await self._import_flow(bundle, options, status)

        self.logger.info(f"Imported journey {tree_id} ({status.status})")
        return status

    # ========== Dependencies ==========

    async def _import_scripts(self, bundle: SingleTreeExport, status: ImportStatus) -> None:
        for script_id, script in bundle.scripts.items():
            name = script.get('name', '')
            self.logger.debug(f"Script {script_id} ({name})")
            data = dict(script)
            try:
                data['script'] = normalize_script_body(data.get('script'))
                await self.gateway.put_script(script_id, data)
            except (ServiceError, ValueError) as e:
                raise JourneyImportError(
                    f"Error importing script {name} ({script_id}) in journey {bundle.tree_id}: {e}"
                ) from e
            status.record_success('script', script_id)

    async def _import_email_templates(self, bundle: SingleTreeExport, status: ImportStatus) -> None:
        for template_id, template in bundle.email_templates.items():
            self.logger.debug(f"Email template {template_id}")
            try:
                await self.gateway.put_email_template(template_id, template)
            except ServiceError as e:
                self.logger.error(f"Error importing email template {template_id}: {e}")
                status.record_error('emailTemplate', template_id, e)
                continue
            status.record_success('emailTemplate', template_id)

    async def _import_themes(self, bundle: SingleTreeExport, status: ImportStatus) -> None:
        if not bundle.themes:
            return
        theme_ids = [theme.get('_id', '') for theme in bundle.themes]
        try:
            themes = {theme['_id']: theme for theme in bundle.themes}
            self.logger.debug(f"Themes: {', '.join(themes)}")
            await self.gateway.put_themes(themes)
        except KeyError as e:
            self.logger.error(f"Error importing themes of journey {bundle.tree_id}: theme without {e}")
            for theme_id in theme_ids:
                status.record_error('theme', theme_id, f"theme without {e}")
            return
        except ServiceError as e:
            self.logger.error(f"Error importing themes: {e}")
            for theme_id in themes:
                status.record_error('theme', theme_id, e)
            return
        for theme_id in themes:
            status.record_success('theme', theme_id)

    async def _put_social_provider(self, provider_id: str, data: Dict[str, Any]) -> None:
        provider_type = data['_type']['_id']
        try:
            await self.gateway.put_social_provider(provider_type, provider_id, data)
        except GatewayError as e:
            if e.status_code != 500 or e.message != SOCIAL_REDIRECT_MESSAGE:
                raise
            self.logger.debug(f"Clearing redirectAfterFormPostURI of provider {provider_id} and retrying")
            data['redirectAfterFormPostURI'] = ''
            await self.gateway.put_social_provider(provider_type, provider_id, data)

    async def _import_social_providers(self, bundle: SingleTreeExport, status: ImportStatus) -> None:
        for provider_id, provider in bundle.social_identity_providers.items():
            self.logger.debug(f"Social identity provider {provider_id}")
            try:
                await self._put_social_provider(provider_id, dict(provider))
            except (ServiceError, KeyError) as e:
                self.logger.error(f"Error importing provider {provider_id} in journey {bundle.tree_id}: {e}")
                status.record_error('socialIdentityProvider', provider_id, e)
                continue
            status.record_success('socialIdentityProvider', provider_id)

    async def _upsert_saml2_entity(self, location: str, data: Dict[str, Any], metadata: Optional[str]) -> None:
        entity_id = data['entityId']
        existing = await self.gateway.find_saml2_providers(f"entityId eq '{entity_id}'")
        if existing:
            await self.gateway.update_saml2_provider(location, data)
            return
        try:
            await self.gateway.create_saml2_provider(location, data, metadata)
        except ConflictError:
            self.logger.debug(f"SAML2 entity {entity_id} already exists, updating instead")
            await self.gateway.update_saml2_provider(location, data)

    async def _import_saml2_entities(self, bundle: SingleTreeExport, status: ImportStatus) -> None:
        for key, entity in bundle.saml2_entities.items():
            data = dict(entity)
            data.pop('_rev', None)
            location = data.pop('entityLocation', 'hosted')
            entity_xml = data.pop('base64EntityXML', None)
            metadata = None
            if location == 'remote':
                metadata = convert_text_array_to_base64url(entity_xml) if isinstance(entity_xml, list) else entity_xml
            self.logger.debug(f"SAML2 entity {location} {data.get('entityId')}")
            try:
                await self._upsert_saml2_entity(location, data, metadata)
            except (ServiceError, KeyError) as e:
                self.logger.error(f"Error importing SAML2 entity {data.get('entityId', key)}: {e}")
                status.record_error('saml2Entity', key, e)
                continue
            status.record_success('saml2Entity', key)

    async def _import_circles_of_trust(self, bundle: SingleTreeExport, status: ImportStatus) -> None:
        for cot_id, circle in bundle.circles_of_trust.items():
            data = dict(circle)
            data.pop('_rev', None)
            self.logger.debug(f"Circle of trust {cot_id}")
            try:
                await self.gateway.create_circle_of_trust(data)
            except GatewayError as create_error:
                if not isinstance(create_error, ConflictError) and create_error.status_code != 500:
                    self.logger.error(f"Error creating circle of trust {cot_id}: {create_error}")
                    status.record_error('circleOfTrust', cot_id, create_error)
                    continue
                try:
                    await self.gateway.update_circle_of_trust(cot_id, data)
                except ServiceError as update_error:
                    self.logger.error(f"Error creating/updating circle of trust {cot_id}: {update_error}")
                    status.record_error('circleOfTrust', cot_id, update_error)
                    continue
            except ServiceError as e:
                status.record_error('circleOfTrust', cot_id, e)
                continue
            status.record_success('circleOfTrust', cot_id)

    # ========== Nodes and flow ==========

    def _bind_identity_resource(self, obj: Dict[str, Any], journey_identity_resource: Optional[str]) -> None:
        """Point a generic identity resource shared with the journey at this realm's managed user"""
        resource = obj.get('identityResource')
        if (resource
                and resource.endswith(GENERIC_IDENTITY_RESOURCE_SUFFIX)
                and resource == journey_identity_resource):
            obj['identityResource'] = f"managed/{self.context.realm_managed_user()}"
            self.logger.debug(f"identityResource: {obj['identityResource']}")

    async def _import_nodes(self, nodes: Dict[str, Dict[str, Any]], kind: str, bundle: SingleTreeExport,
                            journey_identity_resource: Optional[str], options: ImportOptions,
                            status: ImportStatus) -> None:
        # Sequential: container nodes need the new ids of inner nodes already recorded
        for node_id, node in nodes.items():
            data = copy.deepcopy(node)
            data.pop('_rev', None)
            node_type = node_type_of(data)

            new_id = node_id
            if options.re_uuid:
                new_id = self.id_factory()
                status.id_map[node_id] = new_id
            data['_id'] = new_id

            if options.re_uuid and is_container(node_type):
                inner_map = {
                    ref['_id']: status.id_map[ref['_id']]
                    for ref in data.get('nodes') or []
                    if ref.get('_id') in status.id_map
                }
                data = remap_ids(data, inner_map)

            label = node_id if node_id == new_id else f"{node_id} [{new_id}]"
            self.logger.debug(f"{kind.capitalize()} {label} ({node_type})")
            self._bind_identity_resource(data, journey_identity_resource)

            try:
                await self.gateway.put_node(new_id, node_type, data)
            except ValidationError as e:
                if e.message == MISSING_SCRIPT_MESSAGE:
                    raise MissingScriptError(
                        f"Missing script {data.get('script')} referenced by {kind} {label} "
                        f"({node_type}) in journey {bundle.tree_id}."
                    ) from e
                raise JourneyImportError(f"Error importing {kind} {label} in journey {bundle.tree_id}: {e}") from e
            except ServiceError as e:
                raise JourneyImportError(f"Error importing {kind} {label} in journey {bundle.tree_id}: {e}") from e
            status.record_success('innerNode' if kind == 'inner node' else 'node', node_id)

    async def _import_flow(self, bundle: SingleTreeExport, options: ImportOptions, status: ImportStatus) -> None:
        tree_id = bundle.tree_id
        tree = bundle.tree
        if options.re_uuid and status.id_map:
            tree = remap_ids(tree, status.id_map)

        resource = tree.get('identityResource')
        if resource and resource.endswith(GENERIC_IDENTITY_RESOURCE_SUFFIX):
            tree['identityResource'] = f"managed/{self.context.realm_managed_user()}"
            self.logger.debug(f"identityResource: {tree['identityResource']}")

        tree.pop('_rev', None)
        try:
            await self.gateway.put_tree(tree_id, tree)
        except ValidationError as e:
            valid_attributes = (e.detail or {}).get('validAttributes') if isinstance(e.detail, dict) else None
            if e.message != INVALID_ATTRIBUTE_MESSAGE or valid_attributes is None:
                raise JourneyImportError(f"Error importing journey flow {tree_id}: {e}") from e
            keep = set(valid_attributes) | {'_id'}
            for attribute in [a for a in tree if a not in keep]:
                self.logger.debug(f"Removing invalid attribute: {attribute}")
                del tree[attribute]
            try:
                await self.gateway.put_tree(tree_id, tree)
            except ServiceError as retry_error:
                raise JourneyImportError(f"Error importing journey flow {tree_id}: {retry_error}") from retry_error
        except ServiceError as e:
            raise JourneyImportError(f"Error importing journey flow {tree_id}: {e}") from e
        status.record_success('journey', tree_id)
