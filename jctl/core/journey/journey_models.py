"""
Journey models and types - Core layer
Export bundle documents, import/export options, platform context and status records
"""

from typing import Dict, List, Optional, Any, Literal
from pydantic import BaseModel, Field, field_validator, model_validator

from ..exceptions import DependencyUnresolvedError


ObjectRecord = Dict[str, Any]  # Opaque platform object (tree, node, script, ...)


class PlatformContext(BaseModel):
    """Explicit platform/realm context passed into every journey operation"""
    platform_url: str
    realm: str = "alpha"
    deployment_type: Literal["cloud", "forgeops", "classic"] = "cloud"
    access_token: Optional[str] = None
    am_version: Optional[str] = None
    managed_user_object: Optional[str] = None

    @field_validator('platform_url')
    @classmethod
    def strip_trailing_slash(cls, v):
        """Normalize platform URL"""
        return v.rstrip('/')

    @classmethod
    def from_profile(cls, profile, access_token: Optional[str] = None) -> "PlatformContext":
        """Build a context from a stored ConnectionProfile"""
        return cls(
            platform_url=profile.platform_url,
            realm=profile.realm,
            deployment_type=profile.deployment_type,
            access_token=access_token or profile.access_token,
            am_version=profile.am_version,
            managed_user_object=profile.managed_user_object,
        )

    @property
    def realm_segments(self) -> List[str]:
        return [part for part in self.realm.split('/') if part and part != 'root']

    @property
    def realm_name(self) -> str:
        """Leaf realm name ('root' for the top-level realm)"""
        segments = self.realm_segments
        return segments[-1] if segments else 'root'

    @property
    def realm_path(self) -> str:
        """AM realm path, e.g. 'realms/root/realms/alpha'"""
        return 'realms/root' + ''.join(f'/realms/{part}' for part in self.realm_segments)

    def realm_managed_user(self) -> str:
        """Managed user object of the realm (alpha_user in cloud tenants, user elsewhere)"""
        if self.managed_user_object:
            return self.managed_user_object
        if self.deployment_type == "cloud":
            return f"{self.realm_name}_user"
        return "user"

    def supports_email_templates(self) -> bool:
        return self.deployment_type in ("cloud", "forgeops")

    def supports_themes(self) -> bool:
        return self.deployment_type != "classic"


class ExportOptions(BaseModel):
    """Journey export options"""
    use_string_arrays: bool = True  # Store script bodies as line arrays
    deps: bool = True  # Include scripts, templates, SAML2, social providers, themes


class ImportOptions(BaseModel):
    """Journey import options"""
    re_uuid: bool = False  # Generate new ids for all nodes
    deps: bool = True  # Import dependencies carried in the bundle


class SingleTreeExport(BaseModel):
    """Export document for one journey (keys match the interchange file format)"""
    meta: Optional[Dict[str, Any]] = None
    inner_nodes: Dict[str, ObjectRecord] = Field(default_factory=dict, alias='innerNodes')
    nodes: Dict[str, ObjectRecord] = Field(default_factory=dict)
    scripts: Dict[str, ObjectRecord] = Field(default_factory=dict)
    email_templates: Dict[str, ObjectRecord] = Field(default_factory=dict, alias='emailTemplates')
    social_identity_providers: Dict[str, ObjectRecord] = Field(default_factory=dict, alias='socialIdentityProviders')
    themes: List[ObjectRecord] = Field(default_factory=list)
    saml2_entities: Dict[str, ObjectRecord] = Field(default_factory=dict, alias='saml2Entities')
    circles_of_trust: Dict[str, ObjectRecord] = Field(default_factory=dict, alias='circlesOfTrust')
    tree: ObjectRecord = Field(default_factory=dict)

    class Config:
        validate_by_name = True

    @model_validator(mode='before')
    @classmethod
    def accept_legacy_inner_nodes(cls, data):
        """Older export files spell the inner node group 'innernodes'"""
        if isinstance(data, dict) and 'innernodes' in data:
            data = dict(data)
            legacy = data.pop('innernodes')
            if not data.get('innerNodes') and not data.get('inner_nodes'):
                data['innerNodes'] = legacy
        return data

    @property
    def tree_id(self) -> str:
        return self.tree.get('_id', '')

    def to_dict(self) -> Dict[str, Any]:
        """Serialize with file-format keys"""
        return self.model_dump(by_alias=True, exclude_none=True)


class MultiTreeExport(BaseModel):
    """Export document for many journeys with a single top-level meta block"""
    meta: Dict[str, Any] = Field(default_factory=dict)
    trees: Dict[str, SingleTreeExport] = Field(default_factory=dict)

    def to_dict(self) -> Dict[str, Any]:
        return {
            'meta': self.meta,
            'trees': {name: bundle.to_dict() for name, bundle in self.trees.items()},
        }


class ObjectStatus(BaseModel):
    """Outcome for a single platform object"""
    kind: str
    status: Literal["success", "error"]
    error: Optional[str] = None


class ImportStatus(BaseModel):
    """Per-journey import outcome; non-fatal object failures are collected here"""
    journey: str
    status: Literal["success", "partial", "error"] = "success"
    error: Optional[str] = None
    objects: Dict[str, ObjectStatus] = Field(default_factory=dict)
    id_map: Dict[str, str] = Field(default_factory=dict)

    @staticmethod
    def object_key(kind: str, object_id: str) -> str:
        """Objects of different kinds may share an id"""
        return f"{kind}/{object_id}"

    def record_success(self, kind: str, object_id: str) -> None:
        self.objects[self.object_key(kind, object_id)] = ObjectStatus(kind=kind, status="success")

    def record_error(self, kind: str, object_id: str, error: Any) -> None:
        self.objects[self.object_key(kind, object_id)] = ObjectStatus(kind=kind, status="error", error=str(error))
        if self.status == "success":
            self.status = "partial"

    def fail(self, error: Any) -> None:
        self.status = "error"
        self.error = str(error)

    @property
    def failures(self) -> Dict[str, ObjectStatus]:
        return {key: s for key, s in self.objects.items() if s.status == "error"}


class ResolutionResult(BaseModel):
    """Install order for an import batch plus anything that could not be resolved"""
    order: List[str] = Field(default_factory=list)
    unresolved: Dict[str, List[str]] = Field(default_factory=dict)

    def raise_for_unresolved(self) -> None:
        if self.unresolved:
            raise DependencyUnresolvedError(self.unresolved)


class BatchImportResult(BaseModel):
    """Outcome of importing a batch of journeys"""
    order: List[str] = Field(default_factory=list)
    unresolved: Dict[str, List[str]] = Field(default_factory=dict)
    statuses: Dict[str, ImportStatus] = Field(default_factory=dict)

    @property
    def imported(self) -> List[str]:
        return [name for name, s in self.statuses.items() if s.status != "error"]

    @property
    def failed(self) -> List[str]:
        return [name for name, s in self.statuses.items() if s.status == "error"]


class DeleteStatus(BaseModel):
    """Partial-failure record for multi-node deletions"""
    status: Literal["success", "error"] = "success"
    error: Optional[str] = None
    nodes: Dict[str, ObjectStatus] = Field(default_factory=dict)

    @property
    def node_errors(self) -> int:
        return sum(1 for s in self.nodes.values() if s.status == "error")


class OrphanReport(BaseModel):
    """Nodes that exist on the platform but are not reachable from any journey"""
    orphans: List[ObjectRecord] = Field(default_factory=list)
    total_nodes: int = 0
    active_nodes: int = 0
    skipped_types: List[str] = Field(default_factory=list)

    @property
    def complete(self) -> bool:
        """False when some node types could not be listed and orphans may be under-reported"""
        return not self.skipped_types


class JourneySummary(BaseModel):
    """One row of a journey listing"""
    name: str
    enabled: bool = True
    categories: List[str] = Field(default_factory=list)
    custom: bool = False  # Only set when the listing was analyzed
