"""Client for the container's remote management endpoint.

The endpoint is a Jolokia agent exposing the Karaf MBeans over HTTP/JSON.
Each logical operation opens its own short-lived session; sessions are
closed on every exit path.
"""

from __future__ import annotations

from collections.abc import Mapping
from typing import Any

import httpx

from ..errors import InstallError, ManagementUnavailable, OperationError, UnitNotFound
from ..shared.logging import get_logger
from .deployment import has_scheme
from .verifier import SUBSYSTEM_FIELDS, UnitStatusRecord

logger = get_logger(__name__)

INSTALL_SIGNATURE = "install(java.lang.String,boolean)"
LIST_SIGNATURE = "list()"
INSTANCE_NOT_FOUND = "javax.management.InstanceNotFoundException"

# Named operation -> (which MBean, JMX operation signature)
NAMED_OPERATIONS: dict[str, tuple[str, str]] = {
    "feature:install": ("feature", "installFeature(java.lang.String)"),
    "feature:uninstall": ("feature", "uninstallFeature(java.lang.String)"),
    "feature:repo-add": ("feature", "addRepository(java.lang.String)"),
    "bundle:start": ("bundle", "start(java.lang.String)"),
    "bundle:stop": ("bundle", "stop(java.lang.String)"),
}


class ManagementProtocolError(Exception):
    """Jolokia answered with a non-200 status."""

    def __init__(self, message: str, status: int, error_type: str | None = None):
        self.message = message
        self.status = status
        self.error_type = error_type
        super().__init__(message)


class ManagementSession:
    """One open connection to the management endpoint."""

    def __init__(self, client: httpx.Client, url: str):
        self._client = client
        self.url = url

    def __enter__(self) -> ManagementSession:
        return self

    def __exit__(self, exc_type: Any, exc_val: Any, exc_tb: Any) -> None:
        self.close()

    def close(self) -> None:
        self._client.close()

    def request(self, body: dict[str, Any]) -> Any:
        """Send one Jolokia request and return its `value`.

        Raises:
            httpx.HTTPError: On transport or HTTP status errors.
            ManagementProtocolError: On a Jolokia-level error.
        """
        response = self._client.post(self.url, json=body)
        response.raise_for_status()
        try:
            data = response.json()
        except ValueError as e:
            raise ManagementProtocolError(f"Malformed response: {e}", status=500) from e
        status = data.get("status", 200)
        if status != 200:
            raise ManagementProtocolError(
                data.get("error", f"Management error {status}"),
                status=status,
                error_type=data.get("error_type"),
            )
        return data.get("value")

    def version(self) -> Mapping[str, Any]:
        return self.request({"type": "version"})

    def execute(self, mbean: str, operation: str, *arguments: Any) -> Any:
        body: dict[str, Any] = {"type": "exec", "mbean": mbean, "operation": operation}
        if arguments:
            body["arguments"] = list(arguments)
        return self.request(body)


class ManagementClient:
    """Install units, query their status and invoke named operations."""

    def __init__(
        self,
        url: str,
        username: str = "admin",
        password: str = "admin",
        timeout: float = 30.0,
        bundle_mbean: str = "org.apache.karaf:type=bundles,name=root",
        feature_mbean: str = "org.apache.karaf:type=features,name=root",
        subsystems: Mapping[str, str] = SUBSYSTEM_FIELDS,
        transport: httpx.BaseTransport | None = None,
    ):
        """Initialize client.

        Args:
            url: Jolokia endpoint URL
            username: Basic auth user
            password: Basic auth password
            timeout: Request timeout in seconds
            bundle_mbean: Object name of the bundle management MBean
            feature_mbean: Object name of the feature management MBean
            subsystems: Sub-framework columns to read into status records
            transport: Optional httpx transport (tests use MockTransport)
        """
        self.url = url
        self.auth = (username, password)
        self.timeout = timeout
        self.mbeans = {"bundle": bundle_mbean, "feature": feature_mbean}
        self.subsystems = subsystems
        self._transport = transport

    @classmethod
    def from_settings(
        cls, settings: Any, transport: httpx.BaseTransport | None = None
    ) -> ManagementClient:
        """Build a client from ManagementSettings."""
        return cls(
            settings.url,
            username=settings.username,
            password=settings.password,
            timeout=settings.request_timeout,
            bundle_mbean=settings.bundle_mbean,
            feature_mbean=settings.feature_mbean,
            transport=transport,
        )

    def connect(self, timeout: float | None = None) -> ManagementSession:
        """Open a session and perform the version handshake.

        Raises:
            ManagementUnavailable: If the endpoint cannot be reached or
                rejects the handshake.
        """
        client = httpx.Client(
            timeout=timeout if timeout is not None else self.timeout,
            auth=self.auth,
            transport=self._transport,
        )
        session = ManagementSession(client, self.url)
        try:
            info = session.version()
        except (httpx.HTTPError, ManagementProtocolError) as e:
            session.close()
            raise ManagementUnavailable(
                f"Cannot connect to management endpoint at {self.url}: {e}"
            ) from e
        logger.debug("management_connected", url=self.url, agent=_agent_version(info))
        return session

    def ping(self) -> bool:
        """Readiness predicate: True once a handshake succeeds."""
        with self.connect():
            return True

    def install(self, artifact_path: str, start: bool = True) -> int:
        """Install an artifact and return its remote id.

        Args:
            artifact_path: Local path or URL of the artifact.
            start: Whether the container should start the unit.

        Raises:
            InstallError: On transport or protocol failure.
        """
        url = artifact_path if has_scheme(artifact_path) else f"file:{artifact_path}"
        try:
            with self.connect() as session:
                value = session.execute(self.mbeans["bundle"], INSTALL_SIGNATURE, url, start)
        except ManagementUnavailable as e:
            raise InstallError(f"Cannot install {url}: {e.message}", path=artifact_path) from e
        except (httpx.HTTPError, ManagementProtocolError) as e:
            raise InstallError(f"Cannot install {url}: {e}", path=artifact_path) from e

        try:
            unit_id = int(value)
        except (TypeError, ValueError) as e:
            raise InstallError(
                f"Install of {url} returned no unit id: {value!r}", path=artifact_path
            ) from e
        logger.info("unit_installed", unit_id=unit_id, url=url)
        return unit_id

    def status(self, unit_id: int) -> UnitStatusRecord:
        """Fetch the status record of an installed unit.

        Raises:
            UnitNotFound: If the id is unknown to the endpoint.
            OperationError: On transport or protocol failure.
        """
        try:
            with self.connect() as session:
                table = session.execute(self.mbeans["bundle"], LIST_SIGNATURE)
        except ManagementProtocolError as e:
            if e.error_type == INSTANCE_NOT_FOUND:
                raise UnitNotFound(unit_id) from e
            raise OperationError(f"Cannot list units: {e}", operation="list") from e
        except (httpx.HTTPError, ManagementUnavailable) as e:
            raise OperationError(f"Cannot list units: {e}", operation="list") from e

        row = _find_row(table, unit_id)
        if row is None:
            raise UnitNotFound(unit_id)
        return UnitStatusRecord.from_row(row, self.subsystems)

    def invoke_named_operation(self, name: str, *arguments: Any) -> Any:
        """Invoke a named management operation (e.g. "feature:install").

        Only confirms the call succeeded; does not validate resulting state.

        Raises:
            OperationError: If the operation is unknown or the call fails.
        """
        if name not in NAMED_OPERATIONS:
            raise OperationError(f"Unknown operation: {name}", operation=name, arguments=arguments)
        target, signature = NAMED_OPERATIONS[name]

        logger.info("operation_invoked", operation=name, arguments=list(arguments))
        try:
            with self.connect() as session:
                return session.execute(self.mbeans[target], signature, *arguments)
        except ManagementUnavailable as e:
            raise OperationError(e.message, operation=name, arguments=arguments) from e
        except (httpx.HTTPError, ManagementProtocolError) as e:
            raise OperationError(
                f"Operation {name} failed: {e}", operation=name, arguments=arguments
            ) from e

    def install_feature(self, feature: str) -> None:
        self.invoke_named_operation("feature:install", feature)

    def add_feature_repository(self, url: str) -> None:
        self.invoke_named_operation("feature:repo-add", url)


def _find_row(table: Any, unit_id: int) -> Mapping[str, Any] | None:
    """Locate a unit in the serialized unit table.

    Jolokia serializes single-key tabular data as a mapping keyed by the id;
    some agents return a plain list of rows instead.
    """
    if isinstance(table, Mapping):
        row = table.get(str(unit_id))
        if row is None:
            row = table.get(unit_id)
        return row
    if isinstance(table, list):
        for row in table:
            if isinstance(row, Mapping) and str(row.get("ID")) == str(unit_id):
                return row
    return None


def _agent_version(info: Any) -> str | None:
    if isinstance(info, Mapping):
        return info.get("agent")
    return None
