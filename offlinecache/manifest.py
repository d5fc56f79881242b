"""Cache manifest loading.

The manifest is a JSON document listing the files to precache for one
deployment:

    {"version": "20250101120000", "staticFiles": ["/", "/index.html", ...]}

It is fetched fresh on every lifecycle transition. A missing or broken
manifest never fails the transition: the loader logs a warning and returns
an empty file list with the previous version, so only the built-in
fallback paths get precached.
"""

import json
import logging

from .models import Manifest
from .network import Fetcher, NetworkError
from .paths import url_for_path

logger = logging.getLogger(__name__)


class ManifestLoader:
    """Loads the cache manifest from a fixed well-known URL."""

    def __init__(self, fetcher: Fetcher, origin: str, manifest_path: str) -> None:
        self._fetcher = fetcher
        self.url = url_for_path(origin, manifest_path)

    def load(self, previous_version: str) -> Manifest:
        """Fetch and parse the manifest, bypassing any intermediate cache.

        Args:
            previous_version: Version to keep if the manifest is unusable
                or carries no version of its own.

        Returns:
            The parsed Manifest, or an empty one holding previous_version.
        """
        try:
            response = self._fetcher.fetch(self.url, bypass_cache=True)
        except NetworkError as e:
            logger.warning("Manifest unavailable, using fallback files only: %s", e)
            return Manifest(version=previous_version)

        if not response.ok:
            logger.warning(
                "Manifest unavailable (HTTP %d %s), using fallback files only",
                response.status,
                response.reason,
            )
            return Manifest(version=previous_version)

        try:
            data = json.loads(response.body.decode("utf-8"))
        except (UnicodeDecodeError, json.JSONDecodeError) as e:
            logger.warning("Manifest is not valid JSON, using fallback files only: %s", e)
            return Manifest(version=previous_version)

        return parse_manifest(data, previous_version)


def parse_manifest(data: object, previous_version: str) -> Manifest:
    """Build a Manifest from decoded JSON, tolerating a malformed shape.

    Args:
        data: Decoded manifest document.
        previous_version: Version to use when the document has none.

    Returns:
        The Manifest. A document that isn't an object yields an empty one.
    """
    if not isinstance(data, dict):
        logger.warning("Manifest must be a JSON object, using fallback files only")
        return Manifest(version=previous_version)

    version = data.get("version")
    if not isinstance(version, str) or not version:
        version = previous_version

    raw_files = data.get("staticFiles", [])
    if not isinstance(raw_files, list):
        logger.warning("Manifest 'staticFiles' must be a list, ignoring it")
        raw_files = []

    files: list[str] = []
    for entry in raw_files:
        if isinstance(entry, str):
            files.append(entry)
        else:
            logger.debug("Skipping non-string manifest entry: %r", entry)

    logger.info("Manifest loaded version=%s files=%d", version, len(files))
    return Manifest(version=version, static_files=tuple(files))
