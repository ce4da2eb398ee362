from __future__ import annotations
import json
import socket
import ssl
import urllib.request
from contextlib import closing
from http.client import HTTPResponse
from json import JSONDecodeError
from typing import Any, Dict, List, Optional
from urllib.error import HTTPError, URLError

from . import __version__
from .console import output
from .errors import EXIT_REMOTE_RESOLUTION, Outcome
from .models import BUILD_STREAMS, ArtifactScheme, VersionBuild


HTTP_TIMEOUT = 15.0

NETWORK_ERRORS = (HTTPError, URLError, ssl.SSLError, TimeoutError, socket.timeout, ConnectionError, OSError)


class RemoteApi:
    """
    Thin urllib client shared by the resolver and the installer download.
    Holds the request headers and a timeout; every call is a fresh round trip.
    """

    def __init__(self, user_agent: str = '', timeout: float = HTTP_TIMEOUT):
        """
        Build the default headers once.
        A custom User-Agent replaces the default one.
        """

        self._headers = {

            'Accept': 'application/json, text/plain, */*',

            'User-Agent': f'Forge-Update/{__version__} (+https://files.minecraftforge.net)',

            'Accept-Language': 'en-US,en;q=0.5',

        }

        if user_agent:

            self._headers['User-Agent'] = user_agent

        self.timeout = timeout

    @property
    def headers(self) -> Dict[str, str]:

        return dict(self._headers)

    def open_url(self, url: str) -> HTTPResponse:
        """
        Issue a timed GET with our headers and return the live stream.
        Non-2xx statuses surface as HTTPError from urllib itself.
        """

        req = urllib.request.Request(url, headers=self._headers)

        return urllib.request.urlopen(req, timeout=self.timeout)

    def fetch_json(self, url: str) -> Any:

        with closing(self.open_url(url)) as r:

            return json.load(r)


def extract_versions(document: Any) -> List[str]:
    """
    Normalize a version listing to a newest-first list of strings.
    Accepts a bare list or an object with a 'versions' list; entries may
    be strings or objects with an 'id' (non-release types are skipped).
    """

    raw = document.get('versions') if isinstance(document, dict) else document

    if not isinstance(raw, list):

        raise ValueError("version document has no version list")

    versions: List[str] = []

    for entry in raw:

        if isinstance(entry, str):

            versions.append(entry)

        elif isinstance(entry, dict) and entry.get('id'):

            if entry.get('type', 'release') != 'release':

                continue

            versions.append(str(entry['id']))

    return versions


def extract_promotions(document: Any) -> Dict[str, str]:
    """
    Normalize a promotions document to a flat '{version}-{stream}' -> build map.
    Accepts a bare map or an object with a 'promos' map.
    """

    if isinstance(document, dict) and isinstance(document.get('promos'), dict):

        document = document['promos']

    if not isinstance(document, dict):

        raise ValueError("promotions document is not a map")

    return {str(k): str(v) for k, v in document.items()}


class VersionResolver:
    """
    Two-stage remote lookup: newest platform version from one authority,
    then the promoted loader build for that version from another.
    Both authorities sit behind this one class so either can be swapped.
    """

    def __init__(self, scheme: Optional[ArtifactScheme] = None, api: Optional[RemoteApi] = None):

        self.scheme = scheme or ArtifactScheme()

        self.api = api or RemoteApi()

    def latest_platform_version(self) -> str:

        versions = extract_versions(self.api.fetch_json(self.scheme.versions_url))

        if not versions:

            raise ValueError("version list is empty")

        return versions[0]

    def promoted_build(self, version: str, stream: str) -> str:

        promos = extract_promotions(self.api.fetch_json(self.scheme.promotions_url))

        key = f"{version}-{stream}"

        if key not in promos:

            raise LookupError(f"no '{stream}' build promoted for {version}")

        return promos[key]

    def resolve(self, stream: str = "latest") -> Outcome:
        """
        Return Outcome.ok(VersionBuild) or a RemoteResolutionFailed outcome.
        Network errors, bad statuses, bad JSON and missing keys all collapse
        into that one kind; only the message tells them apart.
        """

        if stream not in BUILD_STREAMS:

            return Outcome.fail(EXIT_REMOTE_RESOLUTION, f"Unknown build stream '{stream}' (expected one of {', '.join(BUILD_STREAMS)})")

        output("# Loading version information ...")

        try:

            version = self.latest_platform_version()

        except (JSONDecodeError, ValueError, LookupError, TypeError) + NETWORK_ERRORS as e:

            return Outcome.fail(EXIT_REMOTE_RESOLUTION, f"Failed to get remote version: {e}", target=self.scheme.versions_url)

        output(f"# Loading {stream} build for [{version}] ...")

        try:

            build = self.promoted_build(version, stream)

        except (JSONDecodeError, ValueError, LookupError, TypeError) + NETWORK_ERRORS as e:

            return Outcome.fail(EXIT_REMOTE_RESOLUTION, f"Failed to get remote build: {e}", target=self.scheme.promotions_url)

        vb = VersionBuild(version, build)

        output(f"# Remote {stream} release: [{vb}]")

        return Outcome.ok(vb)
