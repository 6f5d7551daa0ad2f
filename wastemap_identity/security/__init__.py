"""Password hashing, bearer tokens and rate limiting."""
