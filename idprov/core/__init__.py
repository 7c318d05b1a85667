"""Core Business Logic Module

Identity provisioning and maintenance across two stores, independent of
the HTTP framework.

Module Structure:
    - keycloak/              : Credential store (Keycloak Admin API client)
    - profiles.py            : Profile store (DynamoDB table)
    - provisioning_service.py: Account creation saga with compensation
    - attribute_sync.py      : Credential + profile attribute update
    - tokens.py              : Bearer token decoding (TokenReader)
    - ownership.py           : Ownership guard (token identity vs. requested identity)
    - validators.py          : Input validation (names, phone numbers)
    - consistency.py         : Per-identity cross-store check for operators
    - audit.py               : Signed JSONL audit trail

Usage Pattern:
    Modules are NOT auto-imported so that the CLI and tests can use pieces
    without pulling in Flask.

        from idprov.core.provisioning_service import ProvisioningSaga
        from idprov.core.tokens import TokenReader
        from idprov.core.ownership import authorize, Decision
"""
