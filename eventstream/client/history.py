import logging
from typing import List, Optional

import requests

from eventstream.schemas import EventRecord

logger = logging.getLogger(__name__)


class HistoryViewer:
    """Pulls the stored event log on demand. Keeps the last good snapshot."""

    def __init__(self, events_url: str, timeout: float = 10.0):
        self.events_url = events_url
        self.timeout = timeout
        self.records: List[EventRecord] = []

    def refresh(self, session_id: Optional[str] = None) -> List[EventRecord]:
        params = {"session_id": session_id} if session_id else None
        try:
            r = requests.get(self.events_url, params=params, timeout=self.timeout)
            r.raise_for_status()
            self.records = [EventRecord(**row) for row in r.json()]
        except (requests.RequestException, ValueError) as ex:
            # ValueError covers a non-JSON body and rows that fail validation
            logger.warning("could not refresh history from %s: %s", self.events_url, ex)
        return self.records
