"""
Cluster Client - Minimal Kubernetes API client used to flush action contexts.

Implements the three operations the executor and event recorder need:
server-side apply of resources, server-side apply of the status subresource
and creating/patching events.
"""

import json
import logging
import ssl
from dataclasses import dataclass, field
from typing import Any, Dict, Optional

import aiohttp

from config import ClusterConfig, Config, get_config
from manifests import api_path, metadata

logger = logging.getLogger(__name__)

APPLY_PATCH_CONTENT_TYPE = "application/apply-patch+yaml"
MERGE_PATCH_CONTENT_TYPE = "application/merge-patch+json"
JSON_CONTENT_TYPE = "application/json"


class ClusterAPIError(Exception):
    """Raised when the API server answers with a non-success status."""

    def __init__(self, status: int, reason: str, body: Any = None):
        self.status = status
        self.reason = reason
        self.body = body
        super().__init__(f"Cluster API error {status}: {reason}")


@dataclass(frozen=True)
class ClusterConnection:
    """Connection handle to a Kubernetes API server."""

    api_server: str
    token: str = field(default="", repr=False)  # Never log token
    ca_file: Optional[str] = None
    verify_ssl: bool = True
    request_timeout: int = 30

    @classmethod
    def from_config(cls, cluster_config: Optional[ClusterConfig] = None):
        """Build a connection from cluster configuration."""
        cluster_config = cluster_config or get_config().cluster
        return cls(
            api_server=cluster_config.api_server.rstrip("/"),
            token=cluster_config.token,
            ca_file=cluster_config.ca_file,
            verify_ssl=cluster_config.verify_ssl,
            request_timeout=cluster_config.request_timeout,
        )

    def url(self, path: str) -> str:
        return f"{self.api_server.rstrip('/')}{path}"

    def headers(self, content_type: str) -> Dict[str, str]:
        headers = {
            "Accept": JSON_CONTENT_TYPE,
            "Content-Type": content_type,
        }
        if self.token:
            headers["Authorization"] = f"Bearer {self.token}"
        return headers

    def ssl_context(self):
        """Return the ``ssl`` argument for aiohttp requests."""
        if not self.verify_ssl:
            return False
        if self.ca_file:
            return ssl.create_default_context(cafile=self.ca_file)
        return True


class ClusterClient:
    """
    Applies resources, statuses and events through the Kubernetes API.

    All operations take the connection explicitly, so one client can serve
    contexts for several clusters.
    """

    def __init__(self, field_manager: str = "action-context", force: bool = True):
        self.field_manager = field_manager
        self.force = force

    @classmethod
    def from_config(cls, config: Optional[Config] = None) -> "ClusterClient":
        config = config or get_config()
        return cls(
            field_manager=config.operator.field_manager,
            force=config.operator.force_apply,
        )

    async def apply(
        self,
        resource: Dict[str, Any],
        conn: ClusterConnection,
        field_manager: Optional[str] = None,
        force: Optional[bool] = None,
        plural: Optional[str] = None,
    ) -> Dict[str, Any]:
        """
        Server-side apply a resource.

        Args:
            resource: Full desired resource document.
            conn: Cluster connection.
            field_manager: Field manager name, defaults to the client's.
            force: Force ownership of conflicting fields.
            plural: REST plural of the kind when it cannot be guessed.

        Returns:
            The resource as stored by the API server.

        Raises:
            ClusterAPIError: If the API server rejects the request.
        """
        path = api_path(resource, plural=plural)
        return await self._request(
            "PATCH",
            path,
            conn,
            body=resource,
            content_type=APPLY_PATCH_CONTENT_TYPE,
            params=self._apply_params(field_manager, force),
        )

    async def apply_status(
        self,
        resource: Dict[str, Any],
        conn: ClusterConnection,
        field_manager: Optional[str] = None,
        force: Optional[bool] = None,
        plural: Optional[str] = None,
    ) -> Dict[str, Any]:
        """
        Server-side apply the status subresource of a resource.

        Only the identifying fields and ``status`` are sent, so spec fields
        are not claimed by the field manager.
        """
        meta = metadata(resource)
        body = {
            "apiVersion": resource.get("apiVersion"),
            "kind": resource.get("kind"),
            "metadata": {
                key: meta[key] for key in ("name", "namespace") if key in meta
            },
            "status": resource.get("status") or {},
        }
        path = api_path(resource, subresource="status", plural=plural)
        return await self._request(
            "PATCH",
            path,
            conn,
            body=body,
            content_type=APPLY_PATCH_CONTENT_TYPE,
            params=self._apply_params(field_manager, force),
        )

    async def create_event(
        self, event: Dict[str, Any], conn: ClusterConnection
    ) -> Dict[str, Any]:
        """Create an ``events.k8s.io/v1`` Event."""
        namespace = metadata(event).get("namespace") or "default"
        path = f"/apis/events.k8s.io/v1/namespaces/{namespace}/events"
        return await self._request(
            "POST", path, conn, body=event, content_type=JSON_CONTENT_TYPE
        )

    async def patch_event(
        self,
        namespace: str,
        name: str,
        patch: Dict[str, Any],
        conn: ClusterConnection,
    ) -> Dict[str, Any]:
        """Merge-patch an existing Event (used to bump series counts)."""
        path = f"/apis/events.k8s.io/v1/namespaces/{namespace}/events/{name}"
        return await self._request(
            "PATCH", path, conn, body=patch, content_type=MERGE_PATCH_CONTENT_TYPE
        )

    def _apply_params(
        self, field_manager: Optional[str], force: Optional[bool]
    ) -> Dict[str, str]:
        force = self.force if force is None else force
        return {
            "fieldManager": field_manager or self.field_manager,
            "force": "true" if force else "false",
        }

    async def _request(
        self,
        method: str,
        path: str,
        conn: ClusterConnection,
        body: Optional[Dict[str, Any]] = None,
        content_type: str = JSON_CONTENT_TYPE,
        params: Optional[Dict[str, str]] = None,
    ) -> Dict[str, Any]:
        """Send one request to the API server and decode the JSON answer."""
        timeout = aiohttp.ClientTimeout(total=conn.request_timeout)
        data = json.dumps(body) if body is not None else None

        logger.debug(f"{method} {path}")
        async with aiohttp.ClientSession(timeout=timeout) as session:
            async with session.request(
                method,
                conn.url(path),
                headers=conn.headers(content_type),
                params=params,
                data=data,
                ssl=conn.ssl_context(),
            ) as response:
                if response.status >= 400:
                    error_text = await response.text()
                    try:
                        error_body = json.loads(error_text)
                    except json.JSONDecodeError:
                        error_body = error_text
                    reason = (
                        error_body.get("message", response.reason)
                        if isinstance(error_body, dict)
                        else response.reason
                    )
                    logger.error(
                        f"{method} {path} failed: {response.status} - {reason}"
                    )
                    raise ClusterAPIError(response.status, reason, error_body)

                return await response.json(content_type=None)
