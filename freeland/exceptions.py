"""Freeland exception hierarchy.

Every pipeline step raises one of these classified errors. None of them is
recoverable within a run.
"""

from __future__ import annotations


class FreelandError(RuntimeError):
    """Base exception for all provisioning failures."""


class CredentialError(FreelandError):
    """Local identity record or private key is missing or unparsable."""


class ConnectivityError(FreelandError):
    """Network, DNS or timeout failure talking to the authority."""


class EntitlementRejected(FreelandError):
    """The authority actively refused the handshake (quota or date exceeded)."""


class UnknownAuthError(FreelandError):
    """Handshake failed for a reason that is neither network nor rejection."""


class ProtocolError(FreelandError):
    """The node assignment response could not be interpreted."""


class TemplateShapeError(FreelandError):
    """The profile template does not have the expected outbound layout."""


class SerializationError(FreelandError):
    """The synthesized profile could not be written."""


class EngineError(FreelandError):
    """The tunneling engine could not be constructed or started."""
