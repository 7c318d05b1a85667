"""HTTP layer: blueprints, decorators and error handlers."""
