"""Core domain logic: configuration, credentials, approvals and access control."""
