"""
Patch definition sources

A feature identifier names either a unified diff (``<feature>.diff``) or a
table of pattern rules (``<feature>.json``) stored in a patches directory
or under a base URL.
"""

import json
import logging
import os
from typing import List, Optional

import requests

from asar_patcher import constants
from asar_patcher.diff import parse_patch
from asar_patcher.errors import DiffParseError, PatchSourceError, UnknownFeature
from asar_patcher.models import PatchSpec, PatternRule


def parse_pattern_rules(text: str, origin: str) -> List[PatternRule]:
    """
    Parse a JSON pattern-rule table.

    Args:
        text: JSON document with a "rules" list
        origin: File name or URL, used in error messages

    Raises:
        PatchSourceError: If the document is malformed
    """
    try:
        data = json.loads(text)
    except json.JSONDecodeError as e:
        raise PatchSourceError(f"Invalid JSON in {origin}: {e}") from e

    rules_json = data.get("rules") if isinstance(data, dict) else None
    if not isinstance(rules_json, list):
        raise PatchSourceError(f"{origin} has no 'rules' list")

    try:
        return [PatternRule.from_json(rule) for rule in rules_json]
    except (ValueError, AttributeError) as e:
        raise PatchSourceError(f"Invalid rule in {origin}: {e}") from e


class PatchSource:
    """
    Resolves feature identifiers to PatchSpec objects.

    Local files take precedence over the remote base URL when both are set.
    """

    def __init__(self, patches_dir: Optional[str] = None, base_url: Optional[str] = None,
                 timeout: int = constants.DEFAULT_TIMEOUT, retries: int = constants.DEFAULT_RETRIES):
        """
        Initialize the patch source.

        Args:
            patches_dir: Directory holding <feature>.diff / <feature>.json files
            base_url: URL prefix serving the same file names
            timeout: HTTP timeout in seconds
            retries: HTTP attempts per file
        """
        self.patches_dir = patches_dir
        self.base_url = base_url.rstrip("/") + "/" if base_url else None
        self.timeout = timeout
        self.retries = max(1, retries)
        self.logger = logging.getLogger("asar_patcher.sources")

        self.session = requests.Session()
        self.session.headers.update({
            "User-Agent": constants.USER_AGENT.format(version="0.1.0")
        })

    def available_features(self) -> List[str]:
        """List feature identifiers defined in the local patches directory."""
        if not self.patches_dir or not os.path.isdir(self.patches_dir):
            return []
        features = set()
        for name in os.listdir(self.patches_dir):
            stem, ext = os.path.splitext(name)
            if ext in (constants.DIFF_PATCH_EXTENSION, constants.PATTERN_PATCH_EXTENSION):
                features.add(stem)
        return sorted(features)

    def _read_local(self, file_name: str) -> Optional[str]:
        if not self.patches_dir:
            return None
        path = os.path.join(self.patches_dir, file_name)
        if not os.path.isfile(path):
            return None
        self.logger.debug(f"Loading patch definition {path}")
        with open(path, "r", encoding=constants.DEFAULT_ENCODING) as f:
            return f.read()

    def _get_response(self, url: str) -> Optional[str]:
        """
        Get response from URL with retries.

        A 404 returns None without retrying.

        Args:
            url: URL to request

        Returns:
            Response text, or None if the document does not exist
        """
        for attempt in range(self.retries):
            try:
                response = self.session.get(url, timeout=self.timeout)
                if response.status_code == 404:
                    self.logger.debug(f"No document at {url}")
                    return None
                response.raise_for_status()

                self.logger.debug(f"Response code for {url}: {response.status_code}")
                response.encoding = response.encoding or constants.DEFAULT_ENCODING
                return response.text

            except requests.RequestException as e:
                self.logger.warning(f"Request failed (attempt {attempt + 1}/{self.retries}): {e}")
                if attempt == self.retries - 1:
                    raise

        return None

    def _read_remote(self, file_name: str) -> Optional[str]:
        if not self.base_url:
            return None
        url = self.base_url + file_name
        self.logger.debug(f"Fetching patch definition {url}")
        try:
            return self._get_response(url)
        except requests.RequestException as e:
            raise PatchSourceError(f"Failed to fetch {url}: {e}") from e

    def _read(self, file_name: str) -> Optional[str]:
        text = self._read_local(file_name)
        if text is None:
            text = self._read_remote(file_name)
        return text

    def load(self, feature: str) -> PatchSpec:
        """
        Load the patch units of a feature.

        Args:
            feature: Feature identifier

        Returns:
            PatchSpec holding diff patches and/or pattern rules

        Raises:
            UnknownFeature: If no definition exists
            PatchSourceError: If a definition cannot be parsed or fetched
        """
        if not feature or os.sep in feature or "/" in feature or feature.startswith("."):
            raise UnknownFeature(feature)

        spec = PatchSpec(feature=feature)
        found = False

        diff_name = feature + constants.DIFF_PATCH_EXTENSION
        diff_text = self._read(diff_name)
        if diff_text is not None:
            found = True
            try:
                spec.diff_patches = parse_patch(diff_text)
            except DiffParseError as e:
                raise PatchSourceError(f"Invalid diff {diff_name}: {e}") from e

        rules_name = feature + constants.PATTERN_PATCH_EXTENSION
        rules_text = self._read(rules_name)
        if rules_text is not None:
            found = True
            spec.pattern_rules = parse_pattern_rules(rules_text, rules_name)

        if not found:
            raise UnknownFeature(feature)

        self.logger.debug(
            f"Feature '{feature}': {len(spec.diff_patches)} diff patch(es), "
            f"{len(spec.pattern_rules)} pattern rule(s)"
        )
        return spec
