"""
Job type definitions for playlist synchronization.
"""
from enum import Enum

# Seconds reserved for one job's remote calls when spacing out dispatches
JOB_DURATION = 30


class JobType(str, Enum):
    """Supported job types."""

    FETCH_PATCHES = "fetch-patches"
    GENERATE_JAMS = "generate-jams"
    IMPORT_PLAYLIST = "import-playlist"

    def label(self) -> str:
        """Human-friendly label."""
        labels = {
            JobType.FETCH_PATCHES: "Fetch Created-For Playlists",
            JobType.GENERATE_JAMS: "Generate Jams",
            JobType.IMPORT_PLAYLIST: "Import Playlist",
        }
        return labels.get(self, self.value)
