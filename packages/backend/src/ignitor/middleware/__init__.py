"""HTTP middleware stack (see create_app for the registration order)."""
