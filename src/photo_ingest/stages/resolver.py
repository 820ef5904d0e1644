"""Turns user-supplied references into ordered, deduplicated source items."""

import mimetypes
import re
from html.parser import HTMLParser
from pathlib import Path
from typing import Dict, Iterable, List, Literal, Optional, Sequence, Tuple, Union

import httpx

from ..core.branding import BROWSER_USER_AGENT
from ..core.exceptions import InvalidReferenceError, TransientIOError, ValidationError
from ..core.logging_config import get_logger
from ..core.models import SourceItem, SourceReference

FILE_LINK = re.compile(r"file/d/([\w-]+)")
FOLDER_LINK = re.compile(r"folders/([\w-]+)")
ID_PARAM_LINK = re.compile(r"drive\.google\.com/(?:open|uc)\?(?:[^#]*&)?id=([\w-]+)")

FILE_HREF = re.compile(r"/file/d/([\w-]+)")
ITEM_TOKEN = re.compile(r"^[\w-]{25,}$")
SCRIPT_FILE_ID = re.compile(r'fileId\\?":\\?"([\w-]{25,})\\?"')

FOLDER_URL = "https://drive.google.com/drive/folders/{folder_id}"
DOWNLOAD_URLS = (
    "https://drive.google.com/uc?export=download&id={file_id}",
    "https://drive.google.com/uc?id={file_id}",
    "https://docs.google.com/uc?export=download&id={file_id}",
)

LinkKind = Literal["file", "folder"]


def classify_link(link: str) -> Tuple[LinkKind, str]:
    """
    Classify a shareable link as a single file or a folder.

    Returns:
        ``("file", file_id)`` or ``("folder", folder_id)``

    Raises:
        InvalidReferenceError: If the link matches neither shape
    """
    match = FILE_LINK.search(link)
    if match:
        return "file", match.group(1)
    match = FOLDER_LINK.search(link)
    if match:
        return "folder", match.group(1)
    match = ID_PARAM_LINK.search(link)
    if match:
        return "file", match.group(1)
    raise InvalidReferenceError(f"Invalid Google Drive link: {link}")


def drive_item(file_id: str) -> SourceItem:
    return SourceItem(
        id=file_id,
        suggested_name=f"{file_id}.jpg",
        fetch_hints=[template.format(file_id=file_id) for template in DOWNLOAD_URLS],
    )


def unique_in_order(values: Iterable[str]) -> List[str]:
    return list(dict.fromkeys(values))


class _FolderListingParser(HTMLParser):
    """Collects anchor hrefs, ``data-id`` attributes and script bodies."""

    def __init__(self) -> None:
        super().__init__(convert_charrefs=True)
        self.hrefs: List[str] = []
        self.data_ids: List[str] = []
        self.scripts: List[str] = []
        self._in_script = False
        self._script_parts: List[str] = []

    def handle_starttag(self, tag: str, attrs: List[Tuple[str, Optional[str]]]) -> None:
        attributes = dict(attrs)
        if tag == "a" and attributes.get("href"):
            self.hrefs.append(attributes["href"] or "")
        if attributes.get("data-id"):
            self.data_ids.append(attributes["data-id"] or "")
        if tag == "script":
            self._in_script = True
            self._script_parts = []

    def handle_endtag(self, tag: str) -> None:
        if tag == "script" and self._in_script:
            self.scripts.append("".join(self._script_parts))
            self._in_script = False

    def handle_data(self, data: str) -> None:
        if self._in_script:
            self._script_parts.append(data)


def extract_file_ids(html: str) -> List[str]:
    """
    Find item identifiers in a folder listing page.

    Anchors linking to ``/file/d/<id>`` are used first; if none are found,
    ``data-id`` attributes holding an id-shaped token; if still none, the
    ``fileId":"<id>"`` pattern inside script blocks.
    """
    parser = _FolderListingParser()
    parser.feed(html)
    parser.close()

    file_ids = [m.group(1) for href in parser.hrefs for m in [FILE_HREF.search(href)] if m]
    if not file_ids:
        file_ids = [data_id for data_id in parser.data_ids if ITEM_TOKEN.match(data_id)]
    if not file_ids:
        file_ids = [
            match.group(1)
            for script in parser.scripts
            for match in SCRIPT_FILE_ID.finditer(script)
        ]
    return unique_in_order(file_ids)


class DriveLinkResolver:
    """Resolves Google Drive file and folder links."""

    def __init__(self, http_client: httpx.AsyncClient, timeout: float = 30.0):
        self._http = http_client
        self._timeout = timeout
        self._logger = get_logger("resolver")

    async def resolve(self, link: str) -> List[SourceItem]:
        kind, identifier = classify_link(link)
        if kind == "file":
            self._logger.info(f"Resolved single file: {identifier}")
            return [drive_item(identifier)]

        file_ids = await self.list_folder(identifier)
        if not file_ids:
            self._logger.info(f"No files found in folder {identifier}; nothing to do")
            return []
        return [drive_item(file_id) for file_id in file_ids]

    async def list_folder(self, folder_id: str) -> List[str]:
        url = FOLDER_URL.format(folder_id=folder_id)
        self._logger.info(f"Listing folder {url}")
        try:
            response = await self._http.get(
                url,
                headers={"User-Agent": BROWSER_USER_AGENT},
                timeout=self._timeout,
                follow_redirects=True,
            )
        except httpx.TransportError as e:
            raise TransientIOError(f"Failed to fetch folder {folder_id}: {e!r}") from e

        if response.status_code >= 500 or response.status_code == 429:
            raise TransientIOError(
                f"Failed to fetch folder {folder_id}: HTTP {response.status_code}"
            )
        if not response.is_success:
            raise ValidationError(
                f"Folder {folder_id} is not accessible: HTTP {response.status_code}"
            )

        file_ids = extract_file_ids(response.text)
        self._logger.info(f"Found {len(file_ids)} file id(s) in folder {folder_id}")
        return file_ids

    async def list_references(self, link: str) -> List[SourceReference]:
        """Resolve without ingesting: name and primary download URL per item."""
        items = await self.resolve(link)
        return [
            SourceReference(name=item.suggested_name, url=item.fetch_hints[0])
            for item in items
        ]


def local_file_items(paths: Sequence[Union[str, Path]]) -> List[SourceItem]:
    """
    Turn local file paths into source items that reference them.

    Paths are deduplicated by their resolved location, keeping first-seen
    order. Files are not opened here: a missing or unreadable path fails
    only its own item when it is fetched.
    """
    logger = get_logger("resolver")
    seen: Dict[str, SourceItem] = {}
    for raw_path in paths:
        path = Path(raw_path)
        source_id = str(path.resolve())
        if source_id in seen:
            continue
        content_type, _ = mimetypes.guess_type(path.name)
        seen[source_id] = SourceItem(
            id=source_id,
            suggested_name=path.name,
            local_path=source_id,
            content_type=content_type or "application/octet-stream",
            size_hint=path.stat().st_size if path.is_file() else None,
        )
    logger.info(f"Resolved {len(seen)} local file(s)")
    return list(seen.values())


class SourceResolver:
    """Single entry point selecting a strategy by reference type."""

    def __init__(self, drive_resolver: DriveLinkResolver):
        self._drive = drive_resolver

    async def resolve(self, reference: Union[str, Sequence[Union[str, Path]]]) -> List[SourceItem]:
        if isinstance(reference, str):
            return await self._drive.resolve(reference)
        return local_file_items(reference)

    async def list_references(self, link: str) -> List[SourceReference]:
        return await self._drive.list_references(link)
