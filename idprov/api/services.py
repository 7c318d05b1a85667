"""Store clients shared by all requests of one application instance."""
from __future__ import annotations
from dataclasses import dataclass
from typing import Optional

from flask import current_app

from idprov.core.attribute_sync import AttributeSync
from idprov.core.audit import AuditTrail
from idprov.core.provisioning_service import ProvisioningSaga
from idprov.core.tokens import TokenReader

EXTENSION_KEY = "idprov"


@dataclass
class Services:
    """Built once by ``create_app`` and reused across requests."""
    credentials: object
    profiles: object
    token_reader: TokenReader
    audit: Optional[AuditTrail] = None

    def saga(self) -> ProvisioningSaga:
        return ProvisioningSaga(self.credentials, self.profiles, audit=self.audit)

    def attribute_sync(self) -> AttributeSync:
        return AttributeSync(self.credentials, self.profiles, audit=self.audit)


def init_services(app, services: Services) -> None:
    app.extensions[EXTENSION_KEY] = services


def get_services() -> Services:
    return current_app.extensions[EXTENSION_KEY]
