"""
Image references → model content blocks.

Accepted:
    data:image/(jpeg|png|webp|gif);base64,...   inline uploads
    https://<trusted host>/...                    storage / CDN URLs

Anything else is dropped so the completion service is never asked to
fetch an arbitrary URL.
"""

import re
from typing import Dict, Iterable, List, Optional
from urllib.parse import urlparse

from infrastructure.config import MAX_IMAGES, TRUSTED_IMAGE_HOSTS

_DATA_URL = re.compile(r"^data:image/(?:jpeg|png|webp|gif);base64,.+$", re.DOTALL)


def is_allowed_image_url(url: str, trusted_hosts: Iterable[str] = TRUSTED_IMAGE_HOSTS) -> bool:
    if _DATA_URL.match(url):
        return True
    try:
        parsed = urlparse(url)
    except ValueError:
        return False
    host = (parsed.hostname or "").lower()
    if parsed.scheme != "https" or not host:
        return False
    return any(host == h or host.endswith("." + h) for h in trusted_hosts)


def image_url_to_block(url: str) -> Optional[Dict]:
    """LangChain ``image_url`` content block, or None when the URL is rejected."""
    if not is_allowed_image_url(url):
        return None
    return {"type": "image_url", "image_url": {"url": url}}


def image_blocks(urls: Iterable[str], limit: int = MAX_IMAGES) -> List[Dict]:
    blocks = []
    for url in urls:
        block = image_url_to_block(url)
        if block is not None:
            blocks.append(block)
        if len(blocks) >= limit:
            break
    return blocks
