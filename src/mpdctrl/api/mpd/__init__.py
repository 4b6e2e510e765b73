"""Async MPD client over the line-based TCP protocol.

Modules, leaf first:
    types: Frozen response and state types.
    protocol: Command encoding and response decoding.
    transport: Byte-stream transport contract and TCP implementation.
    pipeline: Serial command queue.
    idle: Idle/noidle controller.
    supervisor: Connection lifecycle and reconnect policy.
    client: MpdClient, wiring the above together.
"""
