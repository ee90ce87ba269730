"""Admin credentials and token auth."""

from depot.identity.models import AdminCredential, AdminIdentity  # noqa: F401
from depot.identity.repository import (  # noqa: F401
    CredentialRepository,
    InMemoryCredentialRepository,
)
