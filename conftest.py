import sys
from pathlib import Path
import os

# Ensure repo root on sys.path for imports from anywhere in tests tree.
ROOT = Path(__file__).resolve().parent
if str(ROOT) not in sys.path:
    sys.path.insert(0, str(ROOT))

os.environ.setdefault("BLOB_BACKEND", "memory")
os.environ.setdefault("CATALOG_BACKEND", "memory")
os.environ.setdefault("PUBLIC_URL_BASE", "https://cdn.test")
os.environ.setdefault("AUTH_MODE", "jwt")
os.environ.setdefault("AUTH_JWT_SIGNING", "test-signing-secret")

from depot.identity.repository import InMemoryCredentialRepository  # noqa: E402
from depot.identity.state import set_credential_repo  # noqa: E402

set_credential_repo(InMemoryCredentialRepository())
