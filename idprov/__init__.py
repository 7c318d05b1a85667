"""idprov: identity provisioning across Keycloak and a DynamoDB profile table.

To use the Flask app:
    from idprov.flask_app import create_app

To use the core operations:
    from idprov.core.provisioning_service import ProvisioningSaga
    from idprov.core.attribute_sync import AttributeSync
"""
# Note: flask_app is not imported here so that the CLI and core modules
# can be used without Flask
