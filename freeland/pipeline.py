"""Pre-flight provisioning pipeline.

Stages run strictly in order::

    IDLE -> CREDENTIAL_LOADED -> ENTITLED -> NODE_RESOLVED
         -> PROFILE_SYNTHESIZED -> HANDED_OFF -> TERMINATED

Any failure jumps straight to ``TERMINATED``. Whatever the stage reached, the
profile artifact is removed on termination.
"""

from __future__ import annotations

import os
from dataclasses import dataclass
from enum import Enum
from pathlib import Path
from typing import Callable, Optional, Protocol

from .config.authority import DEFAULT_AUTHORITY, AuthorityEndpoint
from .config.defaults import DEFAULT_IDENTITY_FILE, DEFAULT_PROFILE_FILE
from .credentials import Identity, load_identity
from .exceptions import FreelandError
from .logging_utils import get_logger
from .ssh_utils import confirm_access
from .tools.node_locator import NodeAssignment, NodeLocator
from .tools.v2ray_client_config import BASELINE_TEMPLATE, Template, remove_profile, synthesize
from .tools.v2ray_engine import V2RayEngine

LOGGER = get_logger(__name__)


class Stage(str, Enum):
    IDLE = "idle"
    CREDENTIAL_LOADED = "credential_loaded"
    ENTITLED = "entitled"
    NODE_RESOLVED = "node_resolved"
    PROFILE_SYNTHESIZED = "profile_synthesized"
    HANDED_OFF = "handed_off"
    TERMINATED = "terminated"


_ORDER = list(Stage)


class Engine(Protocol):
    def start(self) -> None: ...

    def close(self) -> None: ...


@dataclass(frozen=True)
class ProvisionResult:
    identity: Identity
    assignment: NodeAssignment
    profile_path: Path


class ProvisioningPipeline:
    """Drive one provisioning run.

    Collaborators are injectable so each step can be replaced in tests; the
    defaults talk to the real authority.
    """

    def __init__(
        self,
        *,
        identity_path: str | os.PathLike[str] = DEFAULT_IDENTITY_FILE,
        profile_path: str | os.PathLike[str] = DEFAULT_PROFILE_FILE,
        template: Template = BASELINE_TEMPLATE,
        authority: AuthorityEndpoint = DEFAULT_AUTHORITY,
        key_path: str | os.PathLike[str] | None = None,
        access_checker: Optional[Callable[[str], None]] = None,
        locator: Optional[NodeLocator] = None,
    ) -> None:
        self.identity_path = Path(identity_path)
        self.profile_path = Path(profile_path)
        self.template = template
        self.authority = authority
        self.key_path = key_path
        self._access_checker = access_checker or self._default_access_checker
        self._locator = locator or NodeLocator(authority)

        self.stage = Stage.IDLE
        self.failed_stage: Optional[Stage] = None
        self.error: Optional[FreelandError] = None
        self.identity: Optional[Identity] = None
        self.assignment: Optional[NodeAssignment] = None
        self.engine: Optional[Engine] = None

    def _default_access_checker(self, subject: str) -> None:
        confirm_access(subject, authority=self.authority, key_path=self.key_path)

    def _advance(self, stage: Stage) -> None:
        if _ORDER.index(stage) != _ORDER.index(self.stage) + 1:
            raise RuntimeError(f"illegal transition {self.stage.value} -> {stage.value}")
        LOGGER.debug("stage %s -> %s", self.stage.value, stage.value)
        self.stage = stage

    def _fail(self, error: FreelandError) -> None:
        LOGGER.error("Provisioning failed after %s: %s", self.stage.value, error)
        self.failed_stage = self.stage
        self.error = error
        self.terminate()

    def provision(self) -> ProvisionResult:
        """Run every step up to a written profile."""

        if self.stage is not Stage.IDLE:
            raise RuntimeError(f"pipeline already used (stage={self.stage.value})")

        # Leftover from a run that did not exit cleanly.
        remove_profile(self.profile_path)

        try:
            identity = load_identity(self.identity_path)
            self.identity = identity
            self._advance(Stage.CREDENTIAL_LOADED)

            self._access_checker(identity.subject)
            self._advance(Stage.ENTITLED)

            assignment = self._locator.resolve(identity.subject)
            self.assignment = assignment
            self._advance(Stage.NODE_RESOLVED)

            synthesize(self.template, assignment.address, identity.secret, self.profile_path)
            self._advance(Stage.PROFILE_SYNTHESIZED)
        except FreelandError as exc:
            self._fail(exc)
            raise

        return ProvisionResult(identity=identity, assignment=assignment, profile_path=self.profile_path)

    def hand_off(self, engine_factory: Callable[[Path], Engine] = V2RayEngine.construct) -> Engine:
        """Construct and start the engine on the synthesized profile."""

        if self.stage is not Stage.PROFILE_SYNTHESIZED:
            raise RuntimeError(f"no profile to hand off (stage={self.stage.value})")

        try:
            engine = engine_factory(self.profile_path)
            self.engine = engine
            engine.start()
            self._advance(Stage.HANDED_OFF)
        except FreelandError as exc:
            self._fail(exc)
            raise
        return engine

    def terminate(self) -> None:
        """Stop the engine if running and delete the profile artifact."""

        engine, self.engine = self.engine, None
        try:
            if engine is not None:
                engine.close()
        finally:
            remove_profile(self.profile_path)
            self._locator.close()
            self.stage = Stage.TERMINATED


__all__ = ["Engine", "ProvisionResult", "ProvisioningPipeline", "Stage"]
