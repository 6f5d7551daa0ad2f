"""Account aggregate, role profiles, policy and lifecycle service."""
