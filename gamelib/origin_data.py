import logging
import os
import re
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any, Dict, List, Optional

from gamelib.errors import ParseError
from gamelib.models import InstallPackage

logger = logging.getLogger(__name__)

PC_PLATFORM = "PCWIN"
NOT_FOUND_OFFER_TYPE = "Doesn't exist"
INSTALLABLE_OFFER_TYPES = ("Base Game", "DEMO")

_TRAILING_NUMBER = re.compile(r"^(.*?)(\d+)$")


@dataclass
class DownloadUrl:
    effective_date: Optional[datetime] = None
    build_release_version: Optional[str] = None


@dataclass
class Software:
    software_id: Optional[str] = None
    software_platform: Optional[str] = None
    execute_path_override: Optional[str] = None
    install_check_override: Optional[str] = None
    download_urls: List[DownloadUrl] = field(default_factory=list)


@dataclass
class LocalDataResponse:
    """Catalog record for one Origin offer (the 'supercat' local data)."""
    offer_id: str
    offer_type: Optional[str] = None
    display_name: Optional[str] = None
    software: List[Software] = field(default_factory=list)

    @property
    def exists(self) -> bool:
        return self.offer_type != NOT_FOUND_OFFER_TYPE

    @property
    def is_installable(self) -> bool:
        return self.offer_type in INSTALLABLE_OFFER_TYPES

    @property
    def pc_software(self) -> Optional[Software]:
        for software in self.software:
            if software.software_platform == PC_PLATFORM:
                return software
        return None

    @classmethod
    def not_found(cls, offer_id: str) -> "LocalDataResponse":
        return cls(offer_id=offer_id, offer_type=NOT_FOUND_OFFER_TYPE)


def parse_date(value: Any) -> Optional[datetime]:
    """Parses the ISO dates used by the Origin APIs, always returning an aware datetime."""
    if not value:
        return None
    if isinstance(value, datetime):
        date = value
    else:
        try:
            date = datetime.fromisoformat(str(value).strip().replace("Z", "+00:00"))
        except ValueError:
            logger.warning(f"Unknown date format {value}")
            return None
    if date.tzinfo is None:
        date = date.replace(tzinfo=timezone.utc)
    return date


def _as_list(value) -> list:
    if value is None:
        return []
    if isinstance(value, list):
        return value
    return [value]


def decode_local_data(data: Dict[str, Any]) -> LocalDataResponse:
    """
    Builds a LocalDataResponse from the decoded JSON.
    Missing sections are tolerated, a non-object payload raises ParseError.
    """
    if not isinstance(data, dict):
        raise ParseError(f"Expected an object, got {type(data).__name__}", "local data")

    software_list = []
    publishing = data.get("publishing") or {}
    for item in _as_list((publishing.get("softwareList") or {}).get("software")):
        fulfillment = item.get("fulfillmentAttributes") or {}
        urls = []
        for url in _as_list((item.get("downloadURLs") or {}).get("downloadURL")):
            urls.append(DownloadUrl(
                effective_date=parse_date(url.get("effectiveDate")),
                build_release_version=url.get("buildReleaseVersion"),
            ))
        software_list.append(Software(
            software_id=item.get("softwareId"),
            software_platform=item.get("softwarePlatform"),
            execute_path_override=fulfillment.get("executePathOverride"),
            install_check_override=fulfillment.get("installCheckOverride"),
            download_urls=urls,
        ))

    return LocalDataResponse(
        offer_id=data.get("offerId", ""),
        offer_type=data.get("offerType"),
        display_name=(data.get("localizableAttributes") or {}).get("displayName"),
        software=software_list,
    )


def convert_package_id(package_id: str) -> Optional[InstallPackage]:
    """
    Turns a package file name into a game id.

    OFB-EAST52017 becomes OFB-EAST:52017 (':' goes before the trailing number),
    ids starting with 'Origin' are kept as they are.
    A trailing '@subscription' style marker is split off into `source`.
    Returns None when the id has no trailing number.
    """
    game_id = package_id
    if not game_id.startswith("Origin"):
        match = _TRAILING_NUMBER.match(game_id)
        if not match:
            return None
        game_id = f"{match.group(1)}:{match.group(2)}"

    source = ""
    sub_type_index = game_id.find("@")
    if sub_type_index >= 0:
        source = game_id[sub_type_index:]
        game_id = game_id[:sub_type_index]

    return InstallPackage(original_id=package_id, converted_id=game_id, source=source)


def get_install_packages(content_path: str) -> List[InstallPackage]:
    """Lists the install packages found under Origin's LocalContent folder."""
    packages = []
    if not os.path.isdir(content_path):
        return packages

    for dir_path, _, file_names in sorted(os.walk(content_path)):
        for file_name in sorted(file_names):
            if not file_name.lower().endswith(".mfst"):
                continue
            package_id = os.path.splitext(file_name)[0]
            package = convert_package_id(package_id)
            if package is None:
                logger.warning(f"Failed to get game id from file {os.path.join(dir_path, file_name)}")
                continue
            packages.append(package)

    return packages
