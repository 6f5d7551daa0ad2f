"""HTTP routers, schemas and the access gate."""
