"""In-memory artifact builder, scanner, registry and archive."""

from __future__ import annotations

import hashlib
from typing import Any

from hexdeploy.kernel.ports.artifacts import (
    ArtifactArchive,
    ArtifactBuilder,
    ArtifactRef,
    Finding,
    Registry,
    Scanner,
)
from hexdeploy.stdlib.adapters.mock._recording import RecordedCall, Scripted


class MockBuilder(Scripted, ArtifactBuilder):
    """Builds a fake artifact whose digest is derived from the source ref."""

    def __init__(
        self, name: str = "app", fail_on: dict[str, BaseException | str] | None = None
    ) -> None:
        self.name = name
        self.fail_on = dict(fail_on or {})
        self.calls: list[RecordedCall] = []

    async def abuild(self, source_ref: str) -> ArtifactRef:
        self._record("build", source_ref)
        digest = hashlib.sha256(f"{self.name}:{source_ref}".encode()).hexdigest()
        return ArtifactRef(name=self.name, digest=f"sha256:{digest[:16]}")


class MockScanner(Scripted, Scanner):
    """Scanner returning pre-configured findings.

    Examples
    --------
    Example usage::

        scanner = MockScanner([Finding("CVE-2024-0001", FindingSeverity.HIGH)])
        findings = await scanner.ascan(artifact)
    """

    def __init__(
        self,
        findings: list[Finding] | None = None,
        fail_on: dict[str, BaseException | str] | None = None,
    ) -> None:
        self.findings = list(findings or [])
        self.fail_on = dict(fail_on or {})
        self.calls: list[RecordedCall] = []

    async def ascan(self, artifact: ArtifactRef) -> list[Finding]:
        self._record("scan", str(artifact))
        return list(self.findings)


class MockRegistry(Scripted, Registry):
    """Registry keeping pushed tags and signatures in memory."""

    def __init__(self, fail_on: dict[str, BaseException | str] | None = None) -> None:
        self.fail_on = dict(fail_on or {})
        self.calls: list[RecordedCall] = []
        self.tags: dict[str, ArtifactRef] = {}
        self.signed: set[str] = set()

    async def apush(self, artifact: ArtifactRef, tag: str) -> None:
        self._record("push", tag, str(artifact))
        self.tags[tag] = artifact

    async def asign(self, tag: str) -> None:
        self._record("sign", tag)
        if tag not in self.tags:
            raise KeyError(f"cannot sign unknown tag {tag!r}")
        self.signed.add(tag)


class MockArchive(Scripted, ArtifactArchive):
    """Archive keeping run payloads in memory, keyed by run id."""

    def __init__(self, fail_on: dict[str, BaseException | str] | None = None) -> None:
        self.fail_on = dict(fail_on or {})
        self.calls: list[RecordedCall] = []
        self.runs: dict[str, dict[str, Any]] = {}

    async def aarchive(self, run_id: str, payload: dict[str, Any]) -> None:
        self._record("archive", run_id)
        self.runs[run_id] = payload


__all__ = ["MockArchive", "MockBuilder", "MockRegistry", "MockScanner"]
