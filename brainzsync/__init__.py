"""
ListenBrainz playlist sync - imports ListenBrainz generated playlists and
recommendation-based "jams" into a Subsonic-compatible music server.
"""

__version__ = "4.1.0"
