import os
import re
import time
import urllib.parse

from bandcatalog import config

AUDIO_EXTENSIONS = ('.mp3', '.wav', '.flac', '.ogg', '.m4a')

# Mount under which the catalog root is served
GROUPS_MOUNT = 'groups'


def is_safe_segment(name: str | None) -> bool:
    """True if ``name`` can be used verbatim as a single path segment."""
    if not name or name in ('.', '..'):
        return False
    return not any(c in name for c in ('/', '\\', '\x00'))


def sanitize_name(name: str | None) -> str | None:
    """Return a sanitized entity/file name or ``None`` if invalid.

    Names are used verbatim as path segments, so anything that could
    escape the parent directory is refused outright rather than escaped.
    """
    name = (name or '').strip()
    return name if is_safe_segment(name) else None


def split_ext(filename: str) -> tuple[str, str]:
    """Split ``filename`` into base name and extension (``"a.mp3"`` -> ``("a", ".mp3")``)."""
    return os.path.splitext(filename)


def is_audio_file(filename: str) -> bool:
    return split_ext(filename)[1].lower() in AUDIO_EXTENSIONS


def is_cover_file(filename: str) -> bool:
    return filename.lower().startswith('cover.')


def request_scheme(request) -> str:
    """Return the scheme the client used to reach us.

    When ``TRUST_PROXY_HEADERS`` is set, honors ``X-Forwarded-Proto`` and
    ``Forwarded`` so that URLs built behind a TLS-terminating proxy point back
    at ``https``.
    """
    if not config.TRUST_PROXY_HEADERS:
        return request.url.scheme
    proto = request.headers.get('x-forwarded-proto')
    if proto:
        return proto.split(',')[0].strip().lower()
    forwarded = request.headers.get('forwarded')
    if forwarded:
        m = re.search(r'proto=([^;,]+)', forwarded, re.IGNORECASE)
        if m:
            return m.group(1).strip('"').lower()
    return request.url.scheme


def build_url(request, *parts: str) -> str:
    """Compose a public URL for a catalog file from the request's own host.

    ``parts`` are path segments below the ``/groups`` mount.  A cache-busting
    ``v`` parameter (milliseconds since the epoch) is appended.
    """
    host = request.headers.get('host') or request.url.netloc
    path = '/'.join(urllib.parse.quote(part, safe='') for part in (GROUPS_MOUNT, *parts))
    return f"{request_scheme(request)}://{host}/{path}?v={int(time.time() * 1000)}"
