"""Message type codes of the binary protocol."""

from __future__ import annotations

from enum import IntEnum


class ServerMessage(IntEnum):
    """Message types sent by the server."""

    AUTHENTICATION = 0x52
    COMMAND_COMPLETE = 0x43
    COMMAND_DATA_DESCRIPTION = 0x54
    DATA = 0x44
    DUMP_BLOCK = 0x3D
    DUMP_HEADER = 0x40
    ERROR_RESPONSE = 0x45
    LOG_MESSAGE = 0x4C
    PARAMETER_STATUS = 0x53
    PREPARE_COMPLETE = 0x31
    READY_FOR_COMMAND = 0x5A
    RESTORE_READY = 0x2B
    SERVER_HANDSHAKE = 0x76
    SERVER_KEY_DATA = 0x4B


class ClientMessage(IntEnum):
    """Message types sent by the client."""

    AUTHENTICATION_SASL_INITIAL_RESPONSE = 0x70
    AUTHENTICATION_SASL_RESPONSE = 0x72
    CLIENT_HANDSHAKE = 0x56
    DESCRIBE_STATEMENT = 0x44
    DUMP = 0x3E
    EXECUTE = 0x45
    EXECUTE_SCRIPT = 0x51
    FLUSH = 0x48
    OPTIMISTIC_EXECUTE = 0x4F
    PREPARE = 0x50
    RESTORE = 0x3C
    RESTORE_BLOCK = 0x3D
    RESTORE_EOF = 0x2E
    SYNC = 0x53
    TERMINATE = 0x58