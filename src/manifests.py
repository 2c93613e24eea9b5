"""
Manifest helpers - Pure functions over cluster resource documents.

Covers owner references, object references, API path construction and
loading manifests from YAML text. Nothing in this module performs I/O.
"""

import copy
import logging
from typing import Any, Dict, List, Optional

import yaml

logger = logging.getLogger(__name__)

# Kinds whose plural is not the lower-cased kind plus "s"
IRREGULAR_PLURALS = {
    "endpoints": "endpoints",
    "ingress": "ingresses",
    "networkpolicy": "networkpolicies",
    "podsecuritypolicy": "podsecuritypolicies",
    "priorityclass": "priorityclasses",
    "storageclass": "storageclasses",
    "runtimeclass": "runtimeclasses",
    "ingressclass": "ingressclasses",
}


def metadata(resource: Dict[str, Any]) -> Dict[str, Any]:
    """Return the metadata mapping of a resource (empty if absent)."""
    return resource.get("metadata") or {}


def name(resource: Dict[str, Any]) -> Optional[str]:
    return metadata(resource).get("name")


def namespace(resource: Dict[str, Any]) -> Optional[str]:
    return metadata(resource).get("namespace")


def object_reference(resource: Dict[str, Any]) -> Dict[str, Any]:
    """
    Build an object reference pointing at a resource.

    Only fields present on the resource are included.

    Args:
        resource: Resource document.

    Returns:
        Dict with apiVersion, kind, name, namespace, uid and resourceVersion.
    """
    meta = metadata(resource)
    reference = {
        "apiVersion": resource.get("apiVersion"),
        "kind": resource.get("kind"),
        "name": meta.get("name"),
        "namespace": meta.get("namespace"),
        "uid": meta.get("uid"),
        "resourceVersion": meta.get("resourceVersion"),
    }
    return {key: value for key, value in reference.items() if value is not None}


def owner_reference(owner: Dict[str, Any]) -> Dict[str, Any]:
    """
    Build a controller owner reference pointing at ``owner``.

    Owner references are namespace-less, so they are only valid on
    resources in the owner's namespace (or on cluster scoped owners).
    """
    meta = metadata(owner)
    return {
        "apiVersion": owner.get("apiVersion"),
        "kind": owner.get("kind"),
        "name": meta.get("name"),
        "uid": meta.get("uid"),
        "blockOwnerDeletion": True,
        "controller": True,
    }


def add_owner_reference(
    resource: Dict[str, Any], owner: Dict[str, Any]
) -> Dict[str, Any]:
    """
    Return a copy of ``resource`` with an owner reference to ``owner``.

    An existing reference with the same uid is replaced rather than
    duplicated. An owner without a uid cannot be referenced, so the copy
    is returned with its owner references unchanged. The input document
    is left untouched.

    Args:
        resource: The child resource.
        owner: The owning (parent) resource.

    Returns:
        A new resource document carrying the owner reference.
    """
    if not metadata(owner).get("uid"):
        # References without a uid are rejected by the API server
        logger.debug(
            f"Owner {metadata(owner).get('name')} has no uid, "
            f"leaving owner references unchanged"
        )
        return copy.deepcopy(resource)

    reference = owner_reference(owner)
    stamped = copy.deepcopy(resource)
    meta = stamped.setdefault("metadata", {})

    existing = [
        ref
        for ref in meta.get("ownerReferences") or []
        if ref.get("uid") != reference["uid"]
    ]
    meta["ownerReferences"] = existing + [reference]
    return stamped


def plural_for(kind: str) -> str:
    """Guess the REST plural of a kind (e.g. 'Deployment' -> 'deployments')."""
    lowered = kind.lower()
    if lowered in IRREGULAR_PLURALS:
        return IRREGULAR_PLURALS[lowered]
    if lowered.endswith(("s", "x", "z", "ch", "sh")):
        return f"{lowered}es"
    if lowered.endswith("y") and lowered[-2:-1] not in ("a", "e", "i", "o", "u"):
        return f"{lowered[:-1]}ies"
    return f"{lowered}s"


def api_path(
    resource: Dict[str, Any],
    subresource: Optional[str] = None,
    plural: Optional[str] = None,
) -> str:
    """
    Build the REST path of a resource.

    Args:
        resource: Resource document with apiVersion, kind and metadata.name.
        subresource: Optional subresource such as 'status'.
        plural: Explicit plural, overriding the one guessed from the kind.

    Returns:
        Path relative to the API server root, e.g.
        '/apis/apps/v1/namespaces/default/deployments/web'.

    Raises:
        ValueError: If apiVersion, kind or name are missing.
    """
    api_version = resource.get("apiVersion")
    kind = resource.get("kind")
    resource_name = name(resource)
    if not api_version or not kind or not resource_name:
        raise ValueError("Resource must have apiVersion, kind and metadata.name")

    if "/" in api_version:
        base = f"/apis/{api_version}"
    else:
        base = f"/api/{api_version}"

    ns = namespace(resource)
    if ns:
        base = f"{base}/namespaces/{ns}"

    path = f"{base}/{plural or plural_for(kind)}/{resource_name}"
    if subresource:
        path = f"{path}/{subresource}"
    return path


def load_manifests(text: str) -> List[Dict[str, Any]]:
    """
    Parse one or more YAML documents into resource documents.

    Empty documents are skipped.

    Raises:
        ValueError: If a document is not a mapping.
    """
    documents = []
    for document in yaml.safe_load_all(text):
        if document is None:
            continue
        if not isinstance(document, dict):
            raise ValueError(
                f"Manifest documents must be mappings, got {type(document).__name__}"
            )
        documents.append(document)

    logger.debug(f"Loaded {len(documents)} manifest document(s)")
    return documents
