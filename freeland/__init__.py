"""Freeland pre-flight provisioning client.

Before the local V2Ray agent starts, Freeland

1. confirms with the authority, over a public-key SSH handshake, that the
   registered user is still entitled to the service;
2. asks the authority which egress node the user has been assigned;
3. writes a V2Ray client profile pointing at that node with the user's uuid.

:mod:`freeland.pipeline` sequences these steps and :mod:`main` wraps them in
a command-line entry point.
"""

from __future__ import annotations

__version__ = "3.1"
CODENAME = "die Commanderin"
TAGLINE = "An unified platform for anti-censorship."

__all__ = ["CODENAME", "TAGLINE", "__version__"]
