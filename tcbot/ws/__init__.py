"""WebSocket transport: packet codec and reconnecting connections."""
