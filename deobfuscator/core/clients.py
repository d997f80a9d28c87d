"""
Innertube client versions.
Values follow yt-dlp's INNERTUBE_CLIENTS table.
"""

from ..models.enums import ClientType

INNERTUBE_CLIENT_VERSIONS: dict[ClientType, str] = {
    ClientType.WEB: "2.20250312.04.00",
    ClientType.MWEB: "2.20250311.03.00",
    ClientType.TV: "7.20250312.16.00",
    ClientType.ANDROID_VR: "1.62.27",
    ClientType.IOS: "20.10.4",
}


def get_hardcoded_client_version(client_type: ClientType) -> str:
    return INNERTUBE_CLIENT_VERSIONS[client_type]
