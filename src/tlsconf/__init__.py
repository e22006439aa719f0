"""TLS trust material for client and server endpoints.

Generates ephemeral self-signed certificates, assembles trust pools from
system, file, peer and sibling-configuration sources, and binds the
resulting settings per endpoint role.
"""

__version__ = "0.1.0"
