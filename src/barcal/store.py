from __future__ import annotations

import json
from pathlib import Path
from typing import Any, Dict, List, Protocol

import requests


class StoreError(RuntimeError):
    """The persistence collaborator could not serve a request."""


class RecordStore(Protocol):
    def fetch_events(self) -> List[Dict[str, Any]]: ...

    def fetch_specials(self) -> List[Dict[str, Any]]: ...

    def fetch_announcements(self) -> List[Dict[str, Any]]: ...

    def get_setting(self, key: str) -> Any: ...

    def update_event(self, event_id: str, payload: Dict[str, Any]) -> Dict[str, Any]: ...


class HttpRecordStore:
    """Reads records from the admin API and writes event updates back to it."""

    def __init__(self, base_url: str, token: str = "", timeout: float = 8, user_agent: str = "barcal/1.0") -> None:
        self.base_url = base_url.rstrip("/")
        self.timeout = timeout
        self._session = requests.Session()
        self._session.headers.update({"User-Agent": user_agent})
        if token:
            self._session.headers.update({"Authorization": f"Bearer {token}"})

    def _request(self, method: str, path: str, **kwargs) -> Any:
        try:
            resp = self._session.request(method, f"{self.base_url}{path}", timeout=self.timeout, **kwargs)
            resp.raise_for_status()
            return resp.json()
        except (requests.RequestException, ValueError) as e:
            raise StoreError(f"{method} {path} failed: {e}") from e

    def fetch_events(self) -> List[Dict[str, Any]]:
        return list(self._request("GET", "/api/events") or [])

    def fetch_specials(self) -> List[Dict[str, Any]]:
        return list(self._request("GET", "/api/specials") or [])

    def fetch_announcements(self) -> List[Dict[str, Any]]:
        return list(self._request("GET", "/api/announcements") or [])

    def get_setting(self, key: str) -> Any:
        try:
            data = self._request("GET", f"/api/settings/{key}")
        except StoreError as e:
            cause = e.__cause__
            if isinstance(cause, requests.HTTPError) and cause.response is not None and cause.response.status_code == 404:
                return None
            raise
        if isinstance(data, dict) and "value" in data:
            return data["value"]
        return data

    def update_event(self, event_id: str, payload: Dict[str, Any]) -> Dict[str, Any]:
        return self._request("PUT", f"/api/events/{event_id}", json=payload)


class JsonRecordStore:
    """A JSON export of the admin database: {"events": [...], "specials": [...], "announcements": [...], "settings": {...}}."""

    def __init__(self, path: str) -> None:
        self.path = Path(path)

    def _load(self) -> Dict[str, Any]:
        if not self.path.exists():
            return {}
        try:
            return json.loads(self.path.read_text(encoding="utf-8"))
        except ValueError as e:
            raise StoreError(f"Could not read {self.path}: {e}") from e

    def fetch_events(self) -> List[Dict[str, Any]]:
        return list(self._load().get("events", []))

    def fetch_specials(self) -> List[Dict[str, Any]]:
        return list(self._load().get("specials", []))

    def fetch_announcements(self) -> List[Dict[str, Any]]:
        return list(self._load().get("announcements", []))

    def get_setting(self, key: str) -> Any:
        return self._load().get("settings", {}).get(key)

    def update_event(self, event_id: str, payload: Dict[str, Any]) -> Dict[str, Any]:
        data = self._load()
        events = data.get("events", [])
        for record in events:
            if str(record.get("id")) == event_id:
                record.update(payload)
                if "exceptions" in payload:
                    record["exceptions"] = json.dumps(payload["exceptions"])
                self.path.write_text(json.dumps(data, indent=2), encoding="utf-8")
                return dict(record)
        raise StoreError(f"Event {event_id} not found")
