"""Stream quality and client classification heuristics."""

from enum import Enum


class VideoResolution(str, Enum):
    """Normalized resolution tier."""

    UHD_4K = "4K"
    FHD_1080P = "1080p"
    HD_720P = "720p"
    SD_480P = "480p"
    SD = "SD"
    UNKNOWN = "unknown"


class DeviceType(str, Enum):
    """Normalized device class."""

    TV = "tv"
    MOBILE = "mobile"
    TABLET = "tablet"
    DESKTOP = "desktop"
    BROWSER = "browser"
    UNKNOWN = "unknown"


class Platform(str, Enum):
    """Normalized client platform."""

    IOS = "ios"
    ANDROID = "android"
    ANDROIDTV = "androidtv"
    WINDOWS = "windows"
    MACOS = "macos"
    LINUX = "linux"
    TVOS = "tvos"
    ROKU = "roku"
    WEBOS = "webos"
    TIZEN = "tizen"
    UNKNOWN = "unknown"


# Ordered highest first: (tier, min width, min height)
_RESOLUTION_THRESHOLDS = (
    (VideoResolution.UHD_4K, 3200, 2000),
    (VideoResolution.FHD_1080P, 1800, 1000),
    (VideoResolution.HD_720P, 1200, 700),
    (VideoResolution.SD_480P, 700, 460),
)

_RESOLUTION_ORDINALS = {
    VideoResolution.UHD_4K: 2160,
    VideoResolution.FHD_1080P: 1080,
    VideoResolution.HD_720P: 720,
    VideoResolution.SD_480P: 480,
    VideoResolution.SD: 360,
    VideoResolution.UNKNOWN: 0,
}

_TV_PLATFORM_MARKERS = ("tv", "roku", "webos", "tizen", "firetv", "chromecast", "androidtv")
_DESKTOP_PLATFORM_MARKERS = ("windows", "macos", "linux")
_BROWSER_DEVICE_MARKERS = ("browser", "chrome", "firefox", "safari", "edge")


def get_resolution(width: int | None, height: int | None) -> str:
    """Normalize frame dimensions to a resolution tier.

    Width and height are classified independently and the higher tier wins,
    so letterboxed (e.g. 1920x800) and cropped sources land in the expected
    tier. Missing or non-positive dimensions give ``unknown``.
    """
    width = width if width and width > 0 else None
    height = height if height and height > 0 else None
    if width is None and height is None:
        return VideoResolution.UNKNOWN.value

    for tier, min_width, min_height in _RESOLUTION_THRESHOLDS:
        if (width is not None and width >= min_width) or (
            height is not None and height >= min_height
        ):
            return tier.value
    return VideoResolution.SD.value


def resolution_to_number(resolution: str) -> int:
    """Ordinal value of a resolution tier, 0 for anything unrecognised."""
    try:
        return _RESOLUTION_ORDINALS[VideoResolution(resolution)]
    except ValueError:
        return 0


def normalize_device_type(device: str | None, platform: str | None) -> str:
    """Classify a client as tv, mobile, tablet, desktop or browser.

    Checks run in a fixed order: TV signatures first, then phones and
    tablets, then desktop operating systems, then web browsers.
    """
    device_lower = (device or "").lower()
    platform_lower = (platform or "").lower()

    if "tv" in device_lower or any(m in platform_lower for m in _TV_PLATFORM_MARKERS):
        return DeviceType.TV.value

    is_tablet = "ipad" in device_lower or "tablet" in device_lower
    if (
        "iphone" in device_lower
        or "phone" in device_lower
        or platform_lower in ("ios", "android")
    ):
        return DeviceType.TABLET.value if is_tablet else DeviceType.MOBILE.value
    if is_tablet:
        return DeviceType.TABLET.value

    if any(m in platform_lower for m in _DESKTOP_PLATFORM_MARKERS):
        return DeviceType.DESKTOP.value

    if any(m in device_lower for m in _BROWSER_DEVICE_MARKERS):
        return DeviceType.BROWSER.value

    return DeviceType.UNKNOWN.value


def normalize_platform(platform: str | None) -> str:
    """Map a free-form platform string to a known platform."""
    if not platform:
        return Platform.UNKNOWN.value

    lower = platform.lower()

    if "ios" in lower or lower in ("iphone", "ipad"):
        return Platform.IOS.value
    if "android" in lower:
        return Platform.ANDROIDTV.value if "tv" in lower else Platform.ANDROID.value
    if "windows" in lower:
        return Platform.WINDOWS.value
    if "macos" in lower or "mac os" in lower or lower == "darwin":
        return Platform.MACOS.value
    if "linux" in lower:
        return Platform.LINUX.value
    if "tvos" in lower or "apple tv" in lower:
        return Platform.TVOS.value
    if "roku" in lower:
        return Platform.ROKU.value
    if "webos" in lower:
        return Platform.WEBOS.value
    if "tizen" in lower:
        return Platform.TIZEN.value

    return Platform.UNKNOWN.value


def client_name(product: str | None, player_name: str | None) -> str:
    """Client name shown to users, e.g. 'Plex for iOS'."""
    return product or player_name or ""
