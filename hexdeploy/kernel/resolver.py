"""Parameter & Environment Resolver.

Turns an operator's deployment request into a ``RunContext``, and adapter
module paths from the configuration into adapter instances.

Examples
--------
>>> from hexdeploy.kernel.resolver import resolve
>>> resolve("hexdeploy.stdlib.adapters.mock.MockCluster")  # doctest: +SKIP
<class 'hexdeploy.stdlib.adapters.mock.mock_cluster.MockCluster'>
"""

from __future__ import annotations

import importlib
from typing import TYPE_CHECKING, Any

from pydantic import BaseModel, ConfigDict, Field, field_validator
from pydantic import ValidationError as PydanticValidationError

from hexdeploy.kernel.context import RunContext
from hexdeploy.kernel.domain.environment import Environment
from hexdeploy.kernel.domain.version import derive_build_version, normalize_requested_version
from hexdeploy.kernel.exceptions import ResolveError, ValidationError
from hexdeploy.kernel.logging import get_logger
from hexdeploy.kernel.ports_builder import PortsBuilder

if TYPE_CHECKING:
    from hexdeploy.kernel.config.models import HexDeployConfig
    from hexdeploy.kernel.ports_builder import DeploymentPorts

logger = get_logger(__name__)

FEATURE_FLAG = "new_feature"


class DeploymentRequest(BaseModel):
    """What an operator asks for when triggering a run.

    Attributes
    ----------
    environment : Environment
        Target environment (``dev``, ``test``, ``staging`` or ``prod``)
    source_revision : str
        Commit the build is made from
    build_number : int
        CI build counter
    version : str | None
        Explicit version to deploy; None or ``latest`` deploys this build
    application : str | None
        Application name (defaults to the configured one)
    run_tests : bool
        Whether the test stage runs
    feature_flags : dict[str, bool]
        Feature flags for the run
    release_notes : str
        Free-text release notes
    """

    model_config = ConfigDict(extra="forbid", frozen=True)

    environment: Environment
    source_revision: str
    build_number: int = Field(default=0, ge=0)
    version: str | None = None
    application: str | None = None
    run_tests: bool = True
    feature_flags: dict[str, bool] = Field(default_factory=dict)
    release_notes: str = ""

    @field_validator("environment", mode="before")
    @classmethod
    def _parse_environment(cls, value: Any) -> Environment:
        return Environment.parse(value)

    @field_validator("version")
    @classmethod
    def _normalize_version(cls, value: str | None) -> str | None:
        return normalize_requested_version(value)

    @classmethod
    def create(cls, **data: Any) -> DeploymentRequest:
        """Validate ``data`` into a request.

        Raises
        ------
        ValidationError
            If any field is invalid
        """
        try:
            return cls(**data)
        except PydanticValidationError as e:
            first = e.errors()[0]
            field = ".".join(str(p) for p in first["loc"]) or "request"
            raise ValidationError(field, first["msg"], first.get("input")) from e


def resolve_run_context(request: DeploymentRequest, config: HexDeployConfig) -> RunContext:
    """Build the run context for ``request``.

    The build version is derived here, once, before any stage runs.

    Raises
    ------
    ValidationError
        If the source revision or build number is invalid
    ConfigurationError
        If the environment has no settings
    """
    settings = config.settings_for(request.environment)
    build_version = derive_build_version(request.source_revision, request.build_number)
    ctx = RunContext(
        application=request.application or config.application.name,
        environment=request.environment,
        build_version=build_version,
        settings=settings,
        requested_version=request.version,
        run_tests=request.run_tests,
        feature_flags=request.feature_flags,
        release_notes=request.release_notes,
        source_revision=request.source_revision,
    )
    logger.debug(
        "Resolved run {run_id}: {app} {version} -> {env}",
        run_id=ctx.run_id,
        app=ctx.application,
        version=ctx.version_label,
        env=ctx.environment,
    )
    return ctx


def resolve(kind: str) -> type[Any]:
    """Resolve a full module path to a class.

    Raises
    ------
    ResolveError
        If the module or class cannot be found
    """
    if "." not in kind:
        raise ResolveError(kind, "Must be a full module path (e.g. 'mypkg.adapters.MyCluster')")

    module_path, class_name = kind.rsplit(".", 1)
    try:
        module = importlib.import_module(module_path)
    except ModuleNotFoundError as e:
        raise ResolveError(kind, f"Module '{module_path}' not found: {e}") from e
    except ImportError as e:
        raise ResolveError(kind, f"Failed to import '{module_path}': {e}") from e

    try:
        cls = getattr(module, class_name)
    except AttributeError as e:
        available = [name for name in dir(module) if not name.startswith("_")]
        raise ResolveError(
            kind,
            f"Class '{class_name}' not found in '{module_path}'. "
            f"Available: {', '.join(available[:10])}",
        ) from e

    if not isinstance(cls, type):
        raise ResolveError(kind, f"'{class_name}' is not a class (got {type(cls).__name__})")

    return cls


def resolve_ports(config: HexDeployConfig, dry_run: bool = False) -> DeploymentPorts:
    """Instantiate the adapters named in ``config.adapters``.

    With ``dry_run`` every port without a configured adapter gets its
    in-memory adapter; otherwise a missing adapter is a configuration error.

    Raises
    ------
    ResolveError
        If an adapter class path cannot be resolved
    ConfigurationError
        If a port has no adapter, or an adapter key names no port
    """
    builder = PortsBuilder()
    for key, class_path in config.adapters.items():
        cls = resolve(class_path)
        logger.debug("Port {port} -> {cls}", port=key, cls=class_path)
        builder.with_port(key, cls())
    if dry_run:
        builder.with_mocks(config.application.scanners)
    return builder.build()
