"""Test doubles shared across the suite."""

TRACKS = [
    {"title": "Airbag", "duration": "4:44", "position": 1},
    {"title": "Paranoid Android", "duration": "6:23", "position": 2},
]


class FakeMetadataLookup:
    """Stands in for MusicBrainz; records every id it is asked about."""

    def __init__(self, tracks=None, error=None):
        self.tracks = TRACKS if tracks is None else tracks
        self.error = error
        self.calls = []

    def fetch_track_list(self, external_id):
        self.calls.append(external_id)
        if self.error is not None:
            raise self.error
        return list(self.tracks)
