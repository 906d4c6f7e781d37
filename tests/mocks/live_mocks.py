"""
Mock websocket sessions for live channel tests
"""

import asyncio
import json
from typing import Any, Dict, List, Optional


class MockWebSocket:
    """Mock WebSocket for testing"""

    def __init__(self, fail_on_send: bool = False, send_delay: float = 0.0):
        self.messages_sent: List[str] = []
        self.is_closed = False
        self.accept_called = False
        self.fail_on_send = fail_on_send
        self.send_delay = send_delay

    async def accept(self):
        self.accept_called = True

    async def send_text(self, message: str):
        if self.send_delay:
            await asyncio.sleep(self.send_delay)
        if self.fail_on_send:
            raise ConnectionError("client went away")
        if not self.is_closed:
            self.messages_sent.append(message)

    async def close(self):
        self.is_closed = True

    @property
    def envelopes(self) -> List[Dict[str, Any]]:
        return [json.loads(message) for message in self.messages_sent]

    def events(self) -> List[str]:
        return [envelope['event'] for envelope in self.envelopes]

    def last(self, event: str) -> Optional[Dict[str, Any]]:
        matching = [envelope['data'] for envelope in self.envelopes if envelope['event'] == event]
        return matching[-1] if matching else None
