"""Host-facing wire protocol: IPC lines, stdin payloads and timeouts."""
