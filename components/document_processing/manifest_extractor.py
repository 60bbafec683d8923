"""Course cartridge (IMSCC) manifest extraction.

A cartridge is a zip archive whose ``imsmanifest.xml`` describes the course
hierarchy. The parsed manifest tree is returned as structured content, together
with a title resolved through an ordered chain of lookup strategies.
"""

import io
import logging
import zipfile
from typing import Any, Callable, Dict, Optional, Sequence, Tuple, Union

import xmltodict
from components.kb_service.models import ParseResult

logger = logging.getLogger(__name__)

MANIFEST_FILENAME = "imsmanifest.xml"

# Archive entries created by macOS Finder; never a real manifest.
PLATFORM_METADATA_DIRS = ("__macosx",)
APPLEDOUBLE_PREFIX = "._"

# Manifest elements that may legally repeat. They are always parsed as lists.
REPEATABLE_ELEMENTS = frozenset(
    {"organization", "item", "resource", "file", "dependency", "string"}
)

TEXT_KEY = "_"

LOM_NAMESPACE_PREFIX = "lomimscc"


def _local_name(key: str) -> str:
    return key.split(":", 1)[1] if ":" in key else key


def _force_list(path: Any, key: str, value: Any) -> bool:
    return _local_name(key) in REPEATABLE_ELEMENTS


def _strip_prefix(path: Any, key: str, value: Any) -> Tuple[str, Any]:
    if key.startswith("xmlns"):
        return key, value
    return _local_name(key), value


def parse_manifest_xml(
    xml_content: Union[str, bytes], strip_namespace_prefixes: bool = True
) -> Dict[str, Any]:
    """Parse manifest XML into a dict tree.

    Attributes are merged onto their element, element text that sits next to
    attributes is stored under ``"_"``, and repeatable elements are lists even
    when only one occurrence is present. Raw bytes are decoded by the parser
    according to the XML declaration.
    """
    return xmltodict.parse(
        xml_content,
        attr_prefix="",
        cdata_key=TEXT_KEY,
        force_list=_force_list,
        postprocessor=_strip_prefix if strip_namespace_prefixes else None,
    )


def find_manifest_entry(archive: zipfile.ZipFile) -> Optional[str]:
    """Locate the manifest entry, ignoring platform metadata junk.

    When several entries qualify, the one closest to the archive root wins.
    """
    candidates = []
    for info in archive.infolist():
        if info.is_dir():
            continue
        name = info.filename
        lowered = name.lower()
        parts = lowered.split("/")
        if any(part in PLATFORM_METADATA_DIRS for part in parts[:-1]):
            continue
        if parts[-1].startswith(APPLEDOUBLE_PREFIX):
            continue
        if lowered.endswith(MANIFEST_FILENAME):
            candidates.append(name)

    if not candidates:
        return None
    return min(candidates, key=lambda n: (n.count("/"), n))


def _first(value: Any) -> Any:
    if isinstance(value, list):
        return value[0] if value else None
    return value


def _dig(node: Any, *keys: str) -> Any:
    """Walk a key path, stepping into the first element of any list."""
    for key in keys:
        node = _first(node)
        if not isinstance(node, dict):
            return None
        node = node.get(key)
    return node


def _text_of(value: Any) -> Optional[str]:
    """Read element text whether it parsed as a string, a dict or a list."""
    value = _first(value)
    if isinstance(value, dict):
        value = value.get(TEXT_KEY)
    if isinstance(value, str):
        return value
    return None


TitleStrategy = Callable[[Dict[str, Any]], Optional[str]]


def namespaced_lom_title(manifest: Dict[str, Any]) -> Optional[str]:
    p = LOM_NAMESPACE_PREFIX
    return _text_of(
        _dig(manifest, "metadata", f"{p}:lom", f"{p}:general", f"{p}:title", f"{p}:string")
    )


def lom_title(manifest: Dict[str, Any]) -> Optional[str]:
    return _text_of(_dig(manifest, "metadata", "lom", "general", "title", "string"))


def organization_title(manifest: Dict[str, Any]) -> Optional[str]:
    organization = _first(_dig(manifest, "organizations", "organization"))
    if not isinstance(organization, dict):
        return None
    title = _text_of(organization.get("title"))
    if title and title.strip():
        return title
    return _text_of(_dig(organization, "item", "title"))


TITLE_STRATEGIES: Tuple[TitleStrategy, ...] = (
    namespaced_lom_title,
    lom_title,
    organization_title,
)


def resolve_title(
    manifest: Dict[str, Any],
    strategies: Sequence[TitleStrategy] = TITLE_STRATEGIES,
) -> Optional[str]:
    """Return the first non-empty trimmed title produced by the strategies."""
    for strategy in strategies:
        try:
            title = strategy(manifest)
        except (AttributeError, TypeError) as e:
            logger.warning(f"Title lookup {strategy.__name__} failed: {e}")
            continue
        if title and title.strip():
            return title.strip()
    return None


def extract_cartridge(
    data: bytes, strip_namespace_prefixes: bool = True
) -> Optional[ParseResult]:
    """Extract the manifest tree and title from a cartridge archive.

    Returns None when the archive is unreadable or carries no manifest.
    """
    try:
        with zipfile.ZipFile(io.BytesIO(data)) as archive:
            manifest_path = find_manifest_entry(archive)
            if manifest_path is None:
                logger.warning(f"Cartridge: no {MANIFEST_FILENAME} found in archive")
                return None
            xml_content = archive.read(manifest_path)

        parsed = parse_manifest_xml(xml_content, strip_namespace_prefixes)
        manifest = next(
            (v for k, v in parsed.items() if _local_name(k) == "manifest"), None
        )
        title = resolve_title(manifest) if isinstance(manifest, dict) else None
        logger.info(f"Cartridge: parsed {manifest_path} (title={title!r})")

        return ParseResult(
            content=parsed,
            title=title,
            metadata={"manifestPath": manifest_path},
        )
    except Exception as e:
        logger.error(f"Cartridge parsing failed: {e}", exc_info=True)
        return None
