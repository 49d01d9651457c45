"""Run context passed explicitly to every stage.

``RunContext`` is immutable apart from an append-only store of string outputs
that stages write for downstream consumers (e.g. the provisioned endpoint URL).
A running stage never touches the context directly: it receives a
``StageScope`` that reads a snapshot of the outputs and buffers its own writes.
The stage executor merges those writes back once the stage (or the whole
parallel group) has finished, so parallel siblings never observe each other.
"""

from __future__ import annotations

import time
import uuid
from collections.abc import Mapping
from dataclasses import dataclass, field
from types import MappingProxyType
from typing import TYPE_CHECKING

from hexdeploy.kernel.domain.stage import merge_outputs
from hexdeploy.kernel.domain.version import LATEST
from hexdeploy.kernel.exceptions import ValidationError

if TYPE_CHECKING:
    from hexdeploy.kernel.config.models import EnvironmentSettings
    from hexdeploy.kernel.domain.environment import Environment


@dataclass(frozen=True, slots=True)
class RunContext:
    """Per-run context, exclusively owned by the stage executor for one run.

    Attributes
    ----------
    application : str
        Application being deployed
    environment : Environment
        Target environment
    build_version : str
        Immutable build-version token, assigned once at creation
    settings : EnvironmentSettings
        Resolved settings for ``environment``
    requested_version : str | None
        Explicit version to deploy; None means latest build
    run_tests : bool
        Whether test stages run
    feature_flags : Mapping[str, bool]
        Feature flag name → enabled
    release_notes : str
        Free-text release notes
    source_revision : str
        Source revision the build version was derived from
    run_id : str
        Unique run identifier
    started_at : float
        Run start timestamp (epoch seconds)
    """

    application: str
    environment: Environment
    build_version: str
    settings: EnvironmentSettings
    requested_version: str | None = None
    run_tests: bool = True
    feature_flags: Mapping[str, bool] = field(default_factory=dict)
    release_notes: str = ""
    source_revision: str = ""
    run_id: str = field(default_factory=lambda: uuid.uuid4().hex[:12])
    started_at: float = field(default_factory=time.time)
    _outputs: dict[str, str] = field(default_factory=dict, repr=False, compare=False)

    def __post_init__(self) -> None:
        if not self.build_version:
            raise ValidationError("build_version", "must be assigned before the run starts")
        object.__setattr__(self, "feature_flags", MappingProxyType(dict(self.feature_flags)))

    @property
    def deploy_version(self) -> str:
        """Version that the deployment stages roll out."""
        return self.requested_version or self.build_version

    @property
    def version_label(self) -> str:
        return self.requested_version or f"{LATEST} ({self.build_version})"

    @property
    def outputs(self) -> Mapping[str, str]:
        """Read-only view of outputs written so far."""
        return MappingProxyType(self._outputs)

    def get_output(self, key: str, default: str | None = None) -> str | None:
        return self._outputs.get(key, default)

    def flag(self, name: str) -> bool:
        return bool(self.feature_flags.get(name, False))

    def scope(self, stage: str, writes: frozenset[str] | None) -> StageScope:
        """Create a private view for a stage, snapshotting the current outputs."""
        return StageScope(self, stage, dict(self._outputs), writes)

    def commit(self, outputs: Mapping[str, str]) -> None:
        """Append stage outputs; existing keys cannot be overwritten."""
        merge_outputs(self._outputs, outputs)


class StageScope:
    """A stage's private, read-mostly view of the run context.

    Reads see the outputs as they were when the scope was created plus the
    stage's own writes. Writes are limited to the declared key set (when one
    is declared) and are append-only.
    """

    __slots__ = ("_allowed", "_ctx", "_snapshot", "_writes", "stage")

    def __init__(
        self,
        ctx: RunContext,
        stage: str,
        snapshot: dict[str, str],
        writes: frozenset[str] | None,
    ) -> None:
        self._ctx = ctx
        self._snapshot = snapshot
        self._allowed = writes
        self._writes: dict[str, str] = {}
        self.stage = stage

    @property
    def ctx(self) -> RunContext:
        return self._ctx

    @property
    def written(self) -> dict[str, str]:
        return dict(self._writes)

    def get_output(self, key: str, default: str | None = None) -> str | None:
        if key in self._writes:
            return self._writes[key]
        return self._snapshot.get(key, default)

    def set_output(self, key: str, value: str) -> None:
        """Record an output for downstream stages.

        Raises
        ------
        ValidationError
            If the key is outside the stage's declared writes, or already set
        """
        if self._allowed is not None and key not in self._allowed:
            raise ValidationError(
                "outputs", f"stage '{self.stage}' did not declare output key", key
            )
        if key in self._writes or key in self._snapshot:
            raise ValidationError("outputs", "output keys are append-only", key)
        self._writes[key] = str(value)
