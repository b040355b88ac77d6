"""HTTP layer: routes, models, dependencies and middleware."""
