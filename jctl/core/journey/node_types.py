"""
Node type classification tables
Dependency detection is driven purely by these sets; unknown node types are opaque
"""

from typing import FrozenSet, Optional


CONTAINER_NODE_TYPES = frozenset({'PageNode', 'CustomPageNode'})

SCRIPTED_NODE_TYPES = frozenset({
    'ConfigProviderNode',
    'ScriptedDecisionNode',
    'ClientScriptNode',
    'SocialProviderHandlerNode',
    'CustomScriptNode',
})

EMAIL_TEMPLATE_NODE_TYPES = frozenset({'EmailSuspendNode', 'EmailTemplateNode'})

SAML2_NODE_TYPE = 'product-Saml2Node'
SOCIAL_PROVIDER_HANDLER_NODE_TYPE = 'SocialProviderHandlerNode'
SELECT_IDP_NODE_TYPE = 'SelectIdPNode'
INNER_TREE_EVALUATOR_NODE_TYPE = 'InnerTreeEvaluatorNode'

# Script property value of a scripted node with no script selected
EMPTY_SCRIPT_PLACEHOLDER = '[Empty]'

# SAML2 node properties that name an entity; metaAlias looks like '/alpha/iSPAzure'
SAML2_ENTITY_PROPERTIES = ('metaAlias', 'idpEntityId')


def node_type_of(node: dict) -> str:
    """Type tag of a fetched node object"""
    return node.get('_type', {}).get('_id', '')


def is_container(node_type: str) -> bool:
    return node_type in CONTAINER_NODE_TYPES


def requires_script(node: dict) -> bool:
    """True when the node references a real script"""
    script_id = node.get('script')
    return (
        node_type_of(node) in SCRIPTED_NODE_TYPES
        and bool(script_id)
        and script_id != EMPTY_SCRIPT_PLACEHOLDER
    )


# Out-of-the-box node types per AM release; anything else in a journey is a custom node
OOTB_NODE_TYPES_6 = frozenset({
    'AbstractSocialAuthLoginNode', 'AccountLockoutNode', 'AgentDataStoreDecisionNode', 'AnonymousUserNode',
    'AuthLevelDecisionNode', 'ChoiceCollectorNode', 'CookiePresenceDecisionNode', 'CreatePasswordNode',
    'DataStoreDecisionNode', 'InnerTreeEvaluatorNode', 'LdapDecisionNode', 'MessageNode', 'MetadataNode',
    'MeterNode', 'ModifyAuthLevelNode', 'OneTimePasswordCollectorDecisionNode', 'OneTimePasswordGeneratorNode',
    'OneTimePasswordSmsSenderNode', 'OneTimePasswordSmtpSenderNode', 'PageNode', 'PasswordCollectorNode',
    'PersistentCookieDecisionNode', 'PollingWaitNode', 'ProvisionDynamicAccountNode', 'ProvisionIdmAccountNode',
    'PushAuthenticationSenderNode', 'PushResultVerifierNode', 'RecoveryCodeCollectorDecisionNode',
    'RecoveryCodeDisplayNode', 'RegisterLogoutWebhookNode', 'RemoveSessionPropertiesNode',
    'RetryLimitDecisionNode', 'ScriptedDecisionNode', 'SessionDataNode', 'SetFailureUrlNode',
    'SetPersistentCookieNode', 'SetSessionPropertiesNode', 'SetSuccessUrlNode', 'SocialFacebookNode',
    'SocialGoogleNode', 'SocialNode', 'SocialOAuthIgnoreProfileNode', 'SocialOpenIdConnectNode',
    'TimerStartNode', 'TimerStopNode', 'UsernameCollectorNode', 'WebAuthnAuthenticationNode',
    'WebAuthnRegistrationNode', 'ZeroPageLoginNode',
})

OOTB_NODE_TYPES_6_5 = OOTB_NODE_TYPES_6

OOTB_NODE_TYPES_7 = frozenset({
    'AcceptTermsAndConditionsNode', 'AccountActiveDecisionNode', 'AccountLockoutNode',
    'AgentDataStoreDecisionNode', 'AnonymousSessionUpgradeNode', 'AnonymousUserNode', 'AttributeCollectorNode',
    'AttributePresentDecisionNode', 'AttributeValueDecisionNode', 'AuthLevelDecisionNode', 'ChoiceCollectorNode',
    'ConsentNode', 'CookiePresenceDecisionNode', 'CreateObjectNode', 'CreatePasswordNode',
    'DataStoreDecisionNode', 'DeviceGeoFencingNode', 'DeviceLocationMatchNode', 'DeviceMatchNode',
    'DeviceProfileCollectorNode', 'DeviceSaveNode', 'DeviceTamperingVerificationNode', 'DisplayUserNameNode',
    'EmailSuspendNode', 'EmailTemplateNode', 'IdentifyExistingUserNode', 'IncrementLoginCountNode',
    'InnerTreeEvaluatorNode', 'IotAuthenticationNode', 'IotRegistrationNode', 'KbaCreateNode',
    'KbaDecisionNode', 'KbaVerifyNode', 'LdapDecisionNode', 'LoginCountDecisionNode', 'MessageNode',
    'MetadataNode', 'MeterNode', 'ModifyAuthLevelNode', 'OneTimePasswordCollectorDecisionNode',
    'OneTimePasswordGeneratorNode', 'OneTimePasswordSmsSenderNode', 'OneTimePasswordSmtpSenderNode',
    'PageNode', 'PasswordCollectorNode', 'PatchObjectNode', 'PersistentCookieDecisionNode', 'PollingWaitNode',
    'ProfileCompletenessDecisionNode', 'ProvisionDynamicAccountNode', 'ProvisionIdmAccountNode',
    'PushAuthenticationSenderNode', 'PushResultVerifierNode', 'QueryFilterDecisionNode',
    'RecoveryCodeCollectorDecisionNode', 'RecoveryCodeDisplayNode', 'RegisterLogoutWebhookNode',
    'RemoveSessionPropertiesNode', 'RequiredAttributesDecisionNode', 'RetryLimitDecisionNode',
    'ScriptedDecisionNode', 'SelectIdPNode', 'SessionDataNode', 'SetFailureUrlNode', 'SetPersistentCookieNode',
    'SetSessionPropertiesNode', 'SetSuccessUrlNode', 'SocialFacebookNode', 'SocialGoogleNode', 'SocialNode',
    'SocialOAuthIgnoreProfileNode', 'SocialOpenIdConnectNode', 'SocialProviderHandlerNode',
    'TermsAndConditionsDecisionNode', 'TimeSinceDecisionNode', 'TimerStartNode', 'TimerStopNode',
    'UsernameCollectorNode', 'ValidatedPasswordNode', 'ValidatedUsernameNode', 'WebAuthnAuthenticationNode',
    'WebAuthnDeviceStorageNode', 'WebAuthnRegistrationNode', 'ZeroPageLoginNode',
    'product-CertificateCollectorNode', 'product-CertificateUserExtractorNode',
    'product-CertificateValidationNode', 'product-KerberosNode', 'product-ReCaptchaNode', 'product-Saml2Node',
    'product-WriteFederationInformationNode',
})

OOTB_NODE_TYPES_7_1 = OOTB_NODE_TYPES_7 | {
    'PushRegistrationNode',
    'GetAuthenticatorAppNode',
    'MultiFactorRegistrationOptionsNode',
    'OptOutMultiFactorAuthenticationNode',
}

OOTB_NODE_TYPES_7_2 = OOTB_NODE_TYPES_7_1 | {
    'OathRegistrationNode',
    'OathTokenVerifierNode',
    'PassthroughAuthenticationNode',
    'ConfigProviderNode',
    'DebugNode',
}


def ootb_node_types(am_version: Optional[str]) -> Optional[FrozenSet[str]]:
    """
    Out-of-the-box node types of an AM release

    Releases after 7.2 use the 7.2 set. Returns None when the version is unknown,
    in which case every journey counts as custom.
    """
    if not am_version:
        return None
    try:
        major, minor = (int(part) for part in am_version.split('.')[:2])
    except ValueError:
        return None
    if major == 6:
        return OOTB_NODE_TYPES_6_5 if minor >= 5 else OOTB_NODE_TYPES_6
    if major == 7 and minor == 0:
        return OOTB_NODE_TYPES_7
    if major == 7 and minor == 1:
        return OOTB_NODE_TYPES_7_1
    if major >= 7:
        return OOTB_NODE_TYPES_7_2
    return None
