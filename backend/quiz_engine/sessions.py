from typing import Dict, Optional


class HostSessions:
    """Tracks which host session each live connection acts for."""

    def __init__(self) -> None:
        self._by_connection: Dict[str, str] = {}

    def bind(self, connection_id: str, host_session_id: str) -> None:
        self._by_connection[connection_id] = host_session_id

    def resolve(self, connection_id: str) -> Optional[str]:
        return self._by_connection.get(connection_id)

    def release(self, connection_id: str) -> Optional[str]:
        return self._by_connection.pop(connection_id, None)
