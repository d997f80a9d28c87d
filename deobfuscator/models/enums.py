from enum import Enum


class ClientVariant(str, Enum):
    """Device persona used to fetch an independent copy of the player script."""

    MOBILE_WEB = "mobile_web"
    TV = "tv"


class ClientType(str, Enum):
    WEB = "WEB"
    MWEB = "MWEB"
    TV = "TVHTML5"
    ANDROID_VR = "ANDROID_VR"
    IOS = "IOS"

    @property
    def variant(self) -> ClientVariant | None:
        """The client variant whose player script serves this client, if any."""
        if self is ClientType.MWEB:
            return ClientVariant.MOBILE_WEB
        if self is ClientType.TV:
            return ClientVariant.TV
        return None
