import os

# Base directory for the relative defaults below.  The original server
# resolved everything against the process working directory.
BASE_DIR = os.path.abspath(os.environ.get('CATALOG_BASE_DIR', os.getcwd()))

# Root served under ``/static``.  The catalog itself lives in ``groups``.
STATIC_DIR = os.path.abspath(os.environ.get('CATALOG_STATIC_DIR', os.path.join(BASE_DIR, 'static')))
GROUPS_DIR = os.path.join(STATIC_DIR, 'groups')

# Staging root for uploads.  Every request gets its own subdirectory.
TMP_DIR = os.path.abspath(os.environ.get('CATALOG_TMP_DIR', os.path.join(BASE_DIR, 'tmp')))

# Origins allowed to call the API from a browser (comma separated).
CORS_ORIGINS = [
    origin.strip()
    for origin in os.environ.get(
        'CORS_ORIGINS', 'http://localhost:5173,http://localhost:4173'
    ).split(',')
    if origin.strip()
]

# Maximum allowed size for a single uploaded file part (default 200 MB)
MAX_UPLOAD_SIZE = int(os.environ.get('MAX_UPLOAD_SIZE', 200 * 1024 * 1024))

DEFAULT_HOST = os.environ.get('HOST', '0.0.0.0')
DEFAULT_PORT = int(os.environ.get('PORT', 4001))

# Honor ``X-Forwarded-Proto``/``Forwarded`` when building public URLs.  Only
# enable this behind a reverse proxy that overwrites those headers.
TRUST_PROXY_HEADERS = os.environ.get('TRUST_PROXY_HEADERS', '').lower() in (
    '1', 'true', 'yes'
)
