"""HTTP surface: envelope, error mapping, middleware and routes."""
