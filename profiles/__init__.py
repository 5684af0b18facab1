"""profiles/ -- Profile loading (with bounded repair) and profile editing."""
