"""
MusicBrainz release lookup.

Fetches ``/release/{mbid}`` as XML and flattens the tracks of every medium
into ``{"title", "duration", "position"}`` dicts.
"""

from typing import Any, Dict, List, Optional, Protocol
import re
import xml.etree.ElementTree as ET

import httpx

from shared.core import get_logger

logger = get_logger(__name__)

MBID_PATTERN = re.compile(r"^[0-9a-f]{8}-[0-9a-f]{4}-[0-9a-f]{4}-[0-9a-f]{4}-[0-9a-f]{12}$", re.IGNORECASE)
RELEASE_INCLUDES = "recordings+artist-credits+labels+discids+media"


class MetadataLookupError(Exception):
    """The metadata service could not be reached or answered garbage."""


class MetadataLookup(Protocol):
    def fetch_track_list(self, external_id: str) -> List[Dict[str, Any]]:
        ...


def is_valid_mbid(mbid: str) -> bool:
    return bool(MBID_PATTERN.match(mbid or ""))


def format_duration(milliseconds: Any) -> str:
    """180000 -> '3:00'. Anything that is not a number counts as zero."""
    try:
        ms = int(float(milliseconds))
    except (TypeError, ValueError):
        ms = 0
    minutes, remainder = divmod(max(ms, 0), 60000)
    return f"{minutes}:{remainder // 1000:02d}"


def _local_name(tag: str) -> str:
    # MusicBrainz answers in the mmd-2.0 default namespace
    return tag.rsplit("}", 1)[-1]


def _children(element: Optional[ET.Element], name: str) -> List[ET.Element]:
    if element is None:
        return []
    return [child for child in element if _local_name(child.tag) == name]


def _child(element: Optional[ET.Element], name: str) -> Optional[ET.Element]:
    found = _children(element, name)
    return found[0] if found else None


def _text(element: Optional[ET.Element], name: str) -> Optional[str]:
    child = _child(element, name)
    if child is None or child.text is None:
        return None
    return child.text.strip() or None


def _position(track: ET.Element, index: int) -> int:
    raw = _text(track, "position") or _text(track, "number")
    try:
        position = int(raw)
    except (TypeError, ValueError):
        return index + 1
    return position or index + 1


def parse_track_list(document: bytes) -> List[Dict[str, Any]]:
    root = ET.fromstring(document.strip())
    release = _child(root, "release") if _local_name(root.tag) == "metadata" else None
    if release is None:
        return []

    tracks = []
    for medium in _children(_child(release, "medium-list"), "medium"):
        for index, track in enumerate(_children(_child(medium, "track-list"), "track")):
            recording = _child(track, "recording")
            tracks.append({
                "title": _text(track, "title") or _text(recording, "title") or "Unknown",
                "duration": format_duration(_text(track, "length") or _text(recording, "length") or 0),
                "position": _position(track, index),
            })
    return tracks


class MusicBrainzClient:
    def __init__(
        self,
        base_url: str,
        user_agent: str,
        timeout: float = 5.0,
        transport: Optional[httpx.BaseTransport] = None,
    ):
        self.base_url = base_url.rstrip("/")
        self.user_agent = user_agent
        self.timeout = timeout
        self.transport = transport

    @classmethod
    def from_settings(cls, settings) -> "MusicBrainzClient":
        return cls(settings.MUSICBRAINZ_URL, settings.MUSICBRAINZ_USER_AGENT, settings.MUSICBRAINZ_TIMEOUT)

    def fetch_track_list(self, external_id: str) -> List[Dict[str, Any]]:
        """Track list of a release; an unknown release yields ``[]``."""
        url = f"{self.base_url}/release/{external_id}?inc={RELEASE_INCLUDES}"
        headers = {"User-Agent": self.user_agent, "Accept": "application/xml"}
        try:
            with httpx.Client(timeout=self.timeout, transport=self.transport) as client:
                response = client.get(url, headers=headers)
        except httpx.TimeoutException as e:
            raise MetadataLookupError(f"MusicBrainz timed out after {self.timeout}s") from e
        except httpx.HTTPError as e:
            raise MetadataLookupError(f"MusicBrainz request failed: {e}") from e

        if response.status_code == 404:
            logger.info(f"MusicBrainz has no release {external_id}")
            return []
        if response.status_code >= 400:
            raise MetadataLookupError(f"MusicBrainz answered HTTP {response.status_code}")

        try:
            return parse_track_list(response.content)
        except ET.ParseError as e:
            raise MetadataLookupError(f"MusicBrainz returned malformed XML: {e}") from e
