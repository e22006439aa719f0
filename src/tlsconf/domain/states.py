from enum import StrEnum


class TLSRole(StrEnum):
    """Endpoint role a TLS settings value is bound for."""

    CLIENT = "client"
    SERVER = "server"
