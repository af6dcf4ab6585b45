from pathlib import Path
from urllib.parse import quote

import httpx

from core.logger import get_logger
from core.settings import Settings, get_settings

from .base import ProfileContextProvider

logger = get_logger(__name__)

_CONTEXT_SUFFIXES = (".md", ".txt")


class ProfileContextService(ProfileContextProvider):
    """Loads per-subject profile context from a URL template or a local directory."""

    def __init__(self, settings: Settings | None = None, source: str | None = None) -> None:
        self._settings = settings or get_settings()
        self._source = source if source is not None else self._settings.resolved_profile_context_source

    async def get_context(self, subject_id: str | None) -> str:
        """
        Loads profile context for a subject.
        Returns an empty string if no subject or source is set, or loading fails.
        """
        if not subject_id or not self._source:
            return ""

        content = ""
        try:
            if self._source.startswith(("http://", "https://")):
                url = self._source.format(subject_id=quote(subject_id, safe=""))
                logger.info(f"Fetching profile context from URL: {url}")
                async with httpx.AsyncClient() as client:
                    response = await client.get(url, timeout=5.0)
                    response.raise_for_status()
                    content = response.text
            else:
                directory = Path(self._source)
                # Subject ids are opaque; never let them escape the directory
                safe_id = Path(subject_id).name
                for suffix in _CONTEXT_SUFFIXES:
                    file_path = directory / f"{safe_id}{suffix}"
                    if file_path.is_file():
                        logger.info(f"Loading profile context from file: {file_path}")
                        content = file_path.read_text(encoding="utf-8")
                        break
                else:
                    logger.warning(f"No profile context for subject {subject_id} under {directory}")
                    return ""

            if content:
                logger.info(f"Loaded {len(content)} characters of profile context")
                return content.strip()

        except Exception as e:
            logger.error(f"Failed to load profile context for {subject_id}: {e}")

        return ""


def format_instructions(base_instructions: str, profile_context: str) -> str:
    """Helper to clearly separate the character prompt from the subject profile"""
    if not profile_context:
        return base_instructions

    return (
        f"{base_instructions}\n\n"
        f"### ABOUT THE CHILD YOU ARE TALKING TO ###\n"
        f"You know this child well; this is not your first meeting. "
        f"Use their name and keep answers to one or two sentences.\n"
        f"{profile_context}\n"
        f"###########################################"
    )
